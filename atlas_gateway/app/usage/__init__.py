"""
Usage auditing: one append-only event per gateway invocation.
"""

from .models import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, UsageEvent, UsageEventCreate, UsageFilters, UsageStatus
from .recorder import UsageRecorder, parse_filters, parse_pagination

__all__ = [
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "UsageEvent",
    "UsageEventCreate",
    "UsageFilters",
    "UsageRecorder",
    "UsageStatus",
    "parse_filters",
    "parse_pagination",
]
