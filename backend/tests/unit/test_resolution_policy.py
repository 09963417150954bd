"""
Unit Tests: Resolution Requirement Policy

Test cases:
- Resolution type selection (api source, large pool, default oracle)
- Evidence tiers at their boundaries
- Minimum dispute stake and escalation cost
- Dispute window arithmetic
"""

from datetime import datetime, timedelta, timezone

import pytest

from doomsettle.schemas.event import ResolutionType, SourceType, VerificationSourceCreate
from doomsettle.services.resolution_policy import (
    calculate_dispute_window_end,
    determine_resolution_type,
    get_escalation_cost,
    get_evidence_requirement,
    get_minimum_dispute_stake,
    get_resolution_requirements,
    is_within_dispute_window,
)

T = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)


def source(source_type):
    return VerificationSourceCreate(name="feed", source_type=source_type)


class TestResolutionType:
    def test_api_source_is_automatic_regardless_of_pool(self):
        sources = [source(SourceType.NEWS), source(SourceType.API)]
        assert determine_resolution_type(0, sources) == ResolutionType.AUTOMATIC
        assert determine_resolution_type(5_000_000, sources) == ResolutionType.AUTOMATIC

    def test_large_pool_needs_multi_sig(self):
        assert determine_resolution_type(10_001, [source(SourceType.GOVERNMENT)]) == ResolutionType.MULTI_SIG

    def test_threshold_pool_stays_oracle(self):
        assert determine_resolution_type(10_000, []) == ResolutionType.ORACLE

    def test_accepts_plain_dicts_and_untyped_sources(self):
        assert determine_resolution_type(0, [{"source_type": "api"}]) == ResolutionType.AUTOMATIC
        assert determine_resolution_type(0, [source(None)]) == ResolutionType.ORACLE


class TestEvidenceRequirement:
    @pytest.mark.parametrize(
        "pool,expected",
        [(0, 0), (999, 0), (1_000, 1), (9_999, 1), (10_000, 2), (99_999, 2), (100_000, 3), (10**9, 3)],
    )
    def test_tiers(self, pool, expected):
        assert get_evidence_requirement(pool) == expected


class TestStakes:
    def test_minimum_dispute_stake_is_flat_for_small_pools(self):
        assert get_minimum_dispute_stake(5_000) == 50
        assert get_minimum_dispute_stake(10_000) == 50

    def test_minimum_dispute_stake_scales_above_threshold(self):
        assert get_minimum_dispute_stake(20_000) == 100
        # floor(10_001 * 0.005) = 50
        assert get_minimum_dispute_stake(10_001) == 50
        assert get_minimum_dispute_stake(1_000_399) == 5_001

    def test_escalation_cost(self):
        assert get_escalation_cost(50_000) == 200
        assert get_escalation_cost(50_001) == 500
        assert get_escalation_cost(10_000) == 200
        assert get_escalation_cost(123_456) == 1_234


class TestRequirements:
    def test_description_matches_type(self):
        requirements = get_resolution_requirements(20_000, [])
        assert requirements.type == ResolutionType.MULTI_SIG
        assert requirements.evidence_count == 2
        assert "multiple" in requirements.description

    def test_serializes_camel_case(self):
        payload = get_resolution_requirements(500, []).model_dump(by_alias=True)
        assert payload == {
            "type": ResolutionType.ORACLE,
            "evidenceCount": 0,
            "description": "Resolved by a trusted oracle with evidence",
        }


class TestDisputeWindow:
    def test_window_end_is_24_hours_later(self):
        assert calculate_dispute_window_end(T) == T + timedelta(hours=24)

    def test_naive_timestamps_are_treated_as_utc(self):
        naive = T.replace(tzinfo=None)
        assert calculate_dispute_window_end(naive) == T + timedelta(hours=24)

    def test_membership(self):
        assert is_within_dispute_window(T, T + timedelta(hours=23, minutes=59))
        assert not is_within_dispute_window(T, T + timedelta(hours=24))
        assert not is_within_dispute_window(T, T + timedelta(hours=24, minutes=1))

    def test_no_proposal_means_no_window(self):
        assert not is_within_dispute_window(None, T)
