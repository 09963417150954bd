"""
Resolution requirement policy.

Pure functions deciding how an event may be resolved, how much evidence a
proposal needs, and what disputes and escalations cost. Everything here is
deterministic over already-validated integers and never raises.
"""

from datetime import datetime, timedelta
from typing import Iterable, Optional

from doomsettle.schemas.event import ResolutionRequirements, ResolutionType, SourceType
from doomsettle.utils.time_utils import ensure_utc

MULTI_SIG_POOL_THRESHOLD = 10_000

# (exclusive upper bound, evidence items required)
EVIDENCE_TIERS = (
    (1_000, 0),
    (10_000, 1),
    (100_000, 2),
)
MAX_EVIDENCE_REQUIRED = 3

MIN_DISPUTE_STAKE = 50
DISPUTE_STAKE_POOL_THRESHOLD = 10_000
DISPUTE_STAKE_RATE_BPS = 50  # 0.5%

MIN_ESCALATION_COST = 200
ESCALATION_POOL_THRESHOLD = 50_000
ESCALATION_RATE_BPS = 100  # 1%

DEFAULT_DISPUTE_WINDOW_HOURS = 24

RESOLUTION_DESCRIPTIONS = {
    ResolutionType.AUTOMATIC: "Resolved automatically via API data source",
    ResolutionType.ORACLE: "Resolved by a trusted oracle with evidence",
    ResolutionType.MULTI_SIG: "Requires approval from multiple resolvers",
    ResolutionType.COMMUNITY: "Resolved by community vote",
}


def _source_type(source) -> Optional[str]:
    value = getattr(source, "source_type", None)
    if value is None and isinstance(source, dict):
        value = source.get("source_type")
    return value.value if isinstance(value, SourceType) else value


def determine_resolution_type(total_pool: int, sources: Iterable) -> ResolutionType:
    """
    Pick the resolution type for an event.

    Any API verification source makes the event automatic regardless of pool
    size; otherwise large pools need multiple independent approvals.
    """
    if any(_source_type(s) == SourceType.API.value for s in sources):
        return ResolutionType.AUTOMATIC
    if total_pool > MULTI_SIG_POOL_THRESHOLD:
        return ResolutionType.MULTI_SIG
    return ResolutionType.ORACLE


def get_evidence_requirement(total_pool: int) -> int:
    """Number of evidence items a proposal needs for this pool size."""
    for upper_bound, required in EVIDENCE_TIERS:
        if total_pool < upper_bound:
            return required
    return MAX_EVIDENCE_REQUIRED


def get_minimum_dispute_stake(total_pool: int) -> int:
    if total_pool > DISPUTE_STAKE_POOL_THRESHOLD:
        return max(MIN_DISPUTE_STAKE, total_pool * DISPUTE_STAKE_RATE_BPS // 10_000)
    return MIN_DISPUTE_STAKE


def get_escalation_cost(total_pool: int) -> int:
    if total_pool > ESCALATION_POOL_THRESHOLD:
        return max(MIN_ESCALATION_COST, total_pool * ESCALATION_RATE_BPS // 10_000)
    return MIN_ESCALATION_COST


def get_resolution_requirements(total_pool: int, sources: Iterable) -> ResolutionRequirements:
    resolution_type = determine_resolution_type(total_pool, sources)
    return ResolutionRequirements(
        type=resolution_type,
        evidence_count=get_evidence_requirement(total_pool),
        description=RESOLUTION_DESCRIPTIONS[resolution_type],
    )


def calculate_dispute_window_end(
    proposed_at: datetime,
    window_hours: int = DEFAULT_DISPUTE_WINDOW_HOURS,
) -> datetime:
    return ensure_utc(proposed_at) + timedelta(hours=window_hours)


def is_within_dispute_window(
    proposed_at: Optional[datetime],
    now: datetime,
    window_hours: int = DEFAULT_DISPUTE_WINDOW_HOURS,
) -> bool:
    """True while ``now`` is strictly before the window end."""
    if proposed_at is None:
        return False
    return ensure_utc(now) < calculate_dispute_window_end(proposed_at, window_hours)
