"""Utility functions and helpers."""

from crm_api.utils.logging import JSONFormatter, configure_json_logging
from crm_api.utils.slug import slugify

__all__ = [
    "JSONFormatter",
    "configure_json_logging",
    "slugify",
]
