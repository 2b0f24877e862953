from rest_framework import serializers

from .models import Country
from .queries import ASC, DESC, SORT_FIELDS, CountryQuery


class CountrySerializer(serializers.ModelSerializer):
    class Meta:
        model = Country
        fields = [
            'id', 'name', 'capital', 'region', 'population',
            'currency_code', 'exchange_rate', 'estimated_gdp',
            'flag_url', 'last_refreshed_at'
        ]
        read_only_fields = fields


class CountryListQuerySerializer(serializers.Serializer):
    """
    Query parameters of GET /countries:
      - region:   case-insensitive substring
      - currency: case-insensitive exact currency code
      - sort:     <field>_<direction>, field in gdp|name|population,
                  direction asc|desc (default name_asc)
    """
    region = serializers.CharField(required=False, allow_blank=True, max_length=255)
    currency = serializers.CharField(required=False, allow_blank=True, max_length=10)
    sort = serializers.CharField(required=False, allow_blank=True)

    def validate_sort(self, value):
        if not value:
            return None
        field, sep, direction = value.strip().lower().rpartition("_")
        if not sep or not field:
            raise serializers.ValidationError("invalid format (use <field>_asc or <field>_desc)")
        if field not in SORT_FIELDS:
            raise serializers.ValidationError(
                f"'{field}' is not a valid sort field (use {', '.join(sorted(SORT_FIELDS))})"
            )
        if direction.upper() not in (ASC, DESC):
            raise serializers.ValidationError(f"'{direction}' is not a valid sort direction (use asc or desc)")
        return field, direction.upper()

    def to_query(self):
        data = self.validated_data
        sort_field, direction = data.get("sort") or ("name", ASC)
        return CountryQuery(
            region=data.get("region") or None,
            currency=data.get("currency") or None,
            sort_field=sort_field,
            direction=direction,
        )
