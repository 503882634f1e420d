"""Decides which discovered narratives get minted.

Three pure steps over the history snapshot taken at run start:
duplicate detection, eligibility classification and the per-run /
rolling 24h rate limit.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence, Tuple

from engine.models import DiscoveredNarrative, HistoryData, HistoryEntry

logger = logging.getLogger(__name__)

MINT_WINDOW = timedelta(hours=24)

REASON_LOW_CONFIDENCE = "below confidence threshold"


# ── Duplicate detection ──

def _normalize_name(name: str) -> str:
    return name.strip().lower()


def is_already_minted(history: HistoryData, narrative_name: str) -> Optional[HistoryEntry]:
    """Return the first history entry whose narrative matches this name.

    Names match when, lower-cased and trimmed, they are equal or one contains
    the other. "AI" therefore matches "AI Tokens"; a loose match skips a mint
    rather than repeating one.
    """
    normalized = _normalize_name(narrative_name)
    if not normalized:
        return None
    for entry in history.entries:
        existing = _normalize_name(entry.narrative)
        if not existing:
            # A blank name would be a substring of every candidate
            continue
        if existing == normalized or normalized in existing or existing in normalized:
            return entry
    return None


# ── Eligibility ──

@dataclass
class ClassificationResult:
    new: List[DiscoveredNarrative] = field(default_factory=list)
    skipped: List[Tuple[DiscoveredNarrative, str]] = field(default_factory=list)

    @property
    def duplicates(self) -> List[Tuple[DiscoveredNarrative, str]]:
        return [(n, r) for n, r in self.skipped if r.startswith("duplicate")]


def classify(narratives: Sequence[DiscoveredNarrative], history: HistoryData,
             min_confidence: int) -> ClassificationResult:
    """Split narratives into eligible and skipped, keeping input order.

    The duplicate check runs first, so a narrative minted before is reported
    as a duplicate whatever its current confidence.
    """
    result = ClassificationResult()
    for narrative in narratives:
        existing = is_already_minted(history, narrative.name)
        if existing is not None:
            result.skipped.append((narrative, f"duplicate of {existing.symbol}"))
        elif narrative.confidence < min_confidence:
            result.skipped.append((narrative, REASON_LOW_CONFIDENCE))
        else:
            result.new.append(narrative)
    return result


# ── Rate limiting ──

def _parse_timestamp(value: str) -> Optional[datetime]:
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        ts = datetime.fromisoformat(text)
    except ValueError:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _as_utc(now: datetime) -> datetime:
    return now if now.tzinfo is not None else now.replace(tzinfo=timezone.utc)


def count_recent_mints(history: HistoryData, now: datetime) -> int:
    """Count entries created strictly less than 24h before ``now``.

    Entries with an unreadable createdAt are not counted.
    """
    now = _as_utc(now)
    count = 0
    for entry in history.entries:
        created = _parse_timestamp(entry.created_at)
        if created is None:
            logger.debug("Ignoring history entry %s with bad createdAt %r", entry.symbol, entry.created_at)
            continue
        if now - created < MINT_WINDOW:
            count += 1
    return count


def daily_remaining(history: HistoryData, now: datetime, per_day_cap: int) -> int:
    return max(0, per_day_cap - count_recent_mints(history, now))


def select_for_minting(eligible: Sequence[DiscoveredNarrative], history: HistoryData,
                       now: datetime, per_run_cap: int, per_day_cap: int) -> List[DiscoveredNarrative]:
    """Take the highest-confidence eligible narratives the caps allow.

    ``eligible`` is expected in confidence-descending order, so truncation
    drops the weakest narratives first.
    """
    remaining = daily_remaining(history, now, per_day_cap)
    limit = max(0, min(len(eligible), per_run_cap, remaining))
    return list(eligible[:limit])
