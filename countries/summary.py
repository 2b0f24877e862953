"""
Summary PNG: total countries, top 5 by estimated GDP, last refresh time.
"""
import logging
import os

from PIL import Image, ImageDraw, ImageFont

from .errors import CountryAPIError
from .utils import get_summary_image_path

logger = logging.getLogger(__name__)

WIDTH, HEIGHT = 800, 500


def _load_fonts():
    try:
        return ImageFont.truetype("arial.ttf", 28), ImageFont.truetype("arial.ttf", 20)
    except OSError:
        default = ImageFont.load_default()
        return default, default


def format_gdp(value):
    return f"{round(value or 0, 2):,}"


class SummaryRenderer:

    def __init__(self, path=None):
        self._path = path

    @property
    def path(self):
        return self._path or get_summary_image_path()

    def render(self, top_countries, total_countries, refreshed_at):
        """Draw and save the image; any failure becomes ``RENDER_FAILED``."""
        path = self._path
        try:
            path = self.path
            img = Image.new("RGB", (WIDTH, HEIGHT), color="white")
            draw = ImageDraw.Draw(img)
            font_title, font_body = _load_fonts()

            draw.text((20, 20), "Country Summary Report", fill="black", font=font_title)
            draw.text((20, 70), f"Total Countries: {total_countries}", fill="black", font=font_body)
            draw.text((20, 120), "Top 5 Countries by Estimated GDP:", fill="black", font=font_body)

            y = 160
            if not top_countries:
                draw.text((40, y), "No GDP data available.", fill="gray", font=font_body)
            else:
                for rank, country in enumerate(top_countries, start=1):
                    draw.text((40, y), f"{rank}. {country.name}: {format_gdp(country.estimated_gdp)}",
                              fill="blue", font=font_body)
                    y += 30

            stamp = refreshed_at.strftime("%Y-%m-%d %H:%M:%S UTC") if refreshed_at else "never"
            draw.text((20, 400), f"Last Refresh: {stamp}", fill="black", font=font_body)

            os.makedirs(os.path.dirname(path), exist_ok=True)
            img.save(path, "PNG")
        except (OSError, ValueError) as exc:
            logger.error("Error generating summary image at %s: %s", path, exc)
            raise CountryAPIError.render_failed() from exc

        logger.info("Summary image saved to %s", path)
        return path

    def ensure_image(self, store):
        """Return the image path, rebuilding it once from ``store`` if missing.

        Before the first refresh there is nothing to summarize, so a missing
        image is reported as not found instead of being rendered empty.
        """
        try:
            path = self.path
        except OSError as exc:
            logger.error("Summary image cache directory unavailable: %s", exc)
            raise CountryAPIError.render_failed() from exc
        if os.path.exists(path):
            return path

        refreshed_at = store.last_refreshed_at()
        if refreshed_at is None:
            raise CountryAPIError.not_found("Summary image not found")

        logger.info("Summary image missing, rebuilding from stored countries")
        return self.render(store.top_by_gdp(), store.count(), refreshed_at)
