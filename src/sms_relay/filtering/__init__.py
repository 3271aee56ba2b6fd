"""Rule-based filtering of inbound messages."""

from .engine import FilterEngine, should_process
from .models import (
    FilterConfig,
    FilterMode,
    FilterRule,
    FilterTarget,
    MatchType,
    dump_filter_config,
    load_filter_config,
)

__all__ = [
    "FilterConfig",
    "FilterEngine",
    "FilterMode",
    "FilterRule",
    "FilterTarget",
    "MatchType",
    "dump_filter_config",
    "load_filter_config",
    "should_process",
]
