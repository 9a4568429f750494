"""Token burn-rate estimates over the trailing usage window."""

from datetime import datetime, timedelta
from typing import Iterable

from session_monitor.types.stats import UsageSample


def prune_samples(samples: Iterable[UsageSample], now: datetime,
                  window_ms: int) -> list[UsageSample]:
    """Keep samples no older than ``window_ms`` before ``now``."""
    cutoff = now - timedelta(milliseconds=window_ms)
    return [s for s in samples if s.timestamp >= cutoff]


def calculate_burn_rate(samples: Iterable[UsageSample], now: datetime,
                        window_ms: int = 300_000) -> float:
    """Tokens per minute across the window.

    Elapsed time runs from the oldest retained sample to ``now`` and is
    floored at one minute so a single burst does not read as a huge rate.
    """
    recent = prune_samples(samples, now, window_ms)
    if not recent:
        return 0.0
    total = sum(s.tokens for s in recent)
    first = min(s.timestamp for s in recent)
    elapsed_minutes = max((now - first).total_seconds() / 60.0, 1.0)
    return total / elapsed_minutes


def estimate_minutes_to_quota(samples: Iterable[UsageSample], current_tokens: int,
                              quota_limit: int, now: datetime,
                              window_ms: int = 300_000) -> float | None:
    """Minutes until ``quota_limit`` is reached at the current burn rate.

    None when there is no measurable burn rate; 0 when already at the quota.
    """
    rate = calculate_burn_rate(samples, now, window_ms)
    if rate <= 0:
        return None
    remaining = quota_limit - current_tokens
    if remaining <= 0:
        return 0.0
    return remaining / rate
