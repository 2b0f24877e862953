import os
import random
from datetime import datetime, timezone

from django.conf import settings


GDP_MULTIPLIER_RANGE = (1000, 2000)
SUMMARY_IMAGE_NAME = "summary.png"


class Config:
    """Filesystem locations derived from settings.ENVIRONMENT / settings.CACHE_DIR."""

    @property
    def cache_path(self) -> str:
        """Return absolute cache directory path (writable)."""
        if settings.ENVIRONMENT == "production":
            path = "/tmp/cache"
        else:
            path = os.path.abspath(settings.CACHE_DIR)
        os.makedirs(path, exist_ok=True)
        return path


config = Config()


def make_multiplier():
    return random.randint(*GDP_MULTIPLIER_RANGE)


def get_summary_image_path():
    """Return full path to the summary image in the writable cache."""
    return os.path.join(config.cache_path, SUMMARY_IMAGE_NAME)


def get_now():
    """Return current UTC datetime (aware)."""
    return datetime.now(timezone.utc)
