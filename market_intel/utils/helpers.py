"""
Helper Functions

Id generation, URL/domain handling and small numeric helpers shared by
the phase agents, the consolidator and the orchestrator.
"""

import random
import string
import time
from datetime import datetime, timezone
from typing import Iterable, Optional
from urllib.parse import urlparse

_BASE36 = string.digits + string.ascii_lowercase


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_execution_id() -> str:
    """Unique id for one pipeline run, e.g. ``mi_lx3k9a2b_4f7q1z``."""
    timestamp = _to_base36(int(time.time() * 1000))
    suffix = "".join(random.choices(_BASE36, k=6))
    return f"mi_{timestamp}_{suffix}"


def generate_report_id() -> str:
    """Report id based on epoch milliseconds."""
    return f"mir_{int(time.time() * 1000)}"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def extract_domain(url: Optional[str]) -> Optional[str]:
    """
    Extract a bare hostname from a URL or domain-like string.

    Strips the scheme, a leading ``www.`` and any path. Returns None for
    empty input.
    """
    if not url:
        return None

    candidate = url.strip()
    if not candidate:
        return None
    if "://" not in candidate:
        candidate = f"https://{candidate}"

    host = urlparse(candidate).hostname or ""
    if not host:
        host = candidate.split("://", 1)[-1].split("/")[0]
    host = host.lower()
    if host.startswith("www."):
        host = host[4:]
    return host or None


def truncate(text: Optional[str], limit: int) -> str:
    if not text:
        return ""
    return text if len(text) <= limit else text[:limit]


def median(values: Iterable[float]) -> Optional[float]:
    ordered = sorted(values)
    if not ordered:
        return None
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return float(ordered[mid])
    return (ordered[mid - 1] + ordered[mid]) / 2


def mean(values: Iterable[float]) -> float:
    items = list(values)
    if not items:
        return 0.0
    return sum(items) / len(items)


def clamp(value: float, lower: float = 0.0, upper: float = 1.0) -> float:
    return max(lower, min(upper, value))
