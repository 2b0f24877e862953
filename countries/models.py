from django.db import models


STATUS_LAST_REFRESHED_AT = "last_refreshed_at"


class Country(models.Model):
    # id: auto-generated, kept stable across refreshes
    # name: unique as stored; refresh matches it case-insensitively
    name = models.CharField(max_length=255, unique=True)
    capital = models.CharField(max_length=255, null=True, blank=True)
    region = models.CharField(max_length=255, null=True, blank=True)
    population = models.BigIntegerField()
    currency_code = models.CharField(max_length=10, null=True, blank=True)
    # exchange_rate: local currency per 1 USD; null when not resolvable
    exchange_rate = models.FloatField(null=True, blank=True)
    # estimated_gdp: population * random(1000-2000) / exchange_rate;
    # null exactly when exchange_rate is null
    estimated_gdp = models.FloatField(null=True, blank=True)
    flag_url = models.CharField(max_length=512, null=True, blank=True)
    # last_refreshed_at: the refresh cycle that last touched this row
    last_refreshed_at = models.DateTimeField()

    REFRESH_FIELDS = [
        "name", "capital", "region", "population", "currency_code",
        "exchange_rate", "estimated_gdp", "flag_url", "last_refreshed_at",
    ]

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class Status(models.Model):
    """Keyed global status; refresh keeps a single ``last_refreshed_at`` row."""

    key = models.CharField(max_length=64, unique=True)
    value = models.DateTimeField()

    class Meta:
        verbose_name_plural = "status"

    def __str__(self):
        return f"{self.key}={self.value.isoformat()}"
