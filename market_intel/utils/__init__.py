"""Shared utilities: settings and small helpers."""

from .config import Settings, get_settings
from .helpers import (
    clamp,
    mean,
    extract_domain,
    generate_execution_id,
    generate_report_id,
    median,
    truncate,
    utc_now_iso,
)

__all__ = [
    "clamp",
    "mean",
    "Settings",
    "get_settings",
    "extract_domain",
    "generate_execution_id",
    "generate_report_id",
    "median",
    "truncate",
    "utc_now_iso",
]
