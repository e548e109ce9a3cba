"""Tests for the certification stage machine (pure functions, no DB)."""

from datetime import datetime, timezone
from itertools import product

import pytest

from app.models.enums import CertificationDisplayStatus, CertificationStage
from app.modules.certification.stages import (
    OUT_OF_ORDER_MESSAGE,
    REVERT_NOT_CURRENT_MESSAGE,
    STAGE_ORDER,
    STAGE_TIMESTAMP_FIELDS,
    InvalidTransitionError,
    compute_display_status,
    expiry_date,
    next_stage,
    parse_stage,
    plan_transition,
    previous_stage,
    stage_index,
    stage_timestamps_consistent,
    validate_transition,
)

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

S = CertificationStage


def _stamped_up_to(stage: CertificationStage) -> dict[str, datetime | None]:
    """Timestamps as they look on a record sitting at ``stage``."""
    idx = stage_index(stage)
    return {
        STAGE_TIMESTAMP_FIELDS[s]: (NOW if i <= idx else None)
        for i, s in enumerate(STAGE_ORDER)
    }


class TestStageOrder:
    def test_canonical_order(self):
        assert [s.value for s in STAGE_ORDER] == ["started", "applied", "in_progress", "approved"]

    def test_next_stage(self):
        assert next_stage(S.STARTED) == S.APPLIED
        assert next_stage(S.IN_PROGRESS) == S.APPROVED
        assert next_stage(S.APPROVED) is None

    def test_previous_stage_floors_at_started(self):
        assert previous_stage(S.APPROVED) == S.IN_PROGRESS
        assert previous_stage(S.APPLIED) == S.STARTED
        assert previous_stage(S.STARTED) == S.STARTED

    def test_parse_accepts_strings(self):
        assert parse_stage("in_progress") == S.IN_PROGRESS

    def test_parse_unknown_stage_rejected(self):
        with pytest.raises(InvalidTransitionError, match="Unknown stage"):
            parse_stage("expired")


class TestNoSkip:
    """checked=True succeeds iff the requested stage is the immediate successor."""

    @pytest.mark.parametrize("current,requested", list(product(STAGE_ORDER, STAGE_ORDER)))
    def test_advance_only_to_successor(self, current, requested):
        if stage_index(requested) == stage_index(current) + 1:
            assert validate_transition(current, requested, True) == requested
        else:
            with pytest.raises(InvalidTransitionError, match=OUT_OF_ORDER_MESSAGE):
                validate_transition(current, requested, True)

    def test_successive_advances_strictly_increase(self):
        current = S.STARTED
        seen = [stage_index(current)]
        while next_stage(current) is not None:
            current = validate_transition(current, next_stage(current), True)
            seen.append(stage_index(current))
        assert seen == sorted(set(seen))
        assert current == S.APPROVED


class TestRevertOnlyCurrent:
    """checked=False succeeds iff the requested stage is the current one."""

    @pytest.mark.parametrize("current,requested", list(product(STAGE_ORDER, STAGE_ORDER)))
    def test_revert_only_current(self, current, requested):
        if requested == current:
            assert validate_transition(current, requested, False) == previous_stage(current)
        else:
            with pytest.raises(InvalidTransitionError, match=REVERT_NOT_CURRENT_MESSAGE):
                validate_transition(current, requested, False)

    def test_reverting_started_is_a_noop(self):
        plan = plan_transition(S.STARTED, S.STARTED, False, NOW)
        assert plan.to_stage == S.STARTED
        assert plan.timestamp_updates == {}
        assert plan.is_noop


class TestTimestamps:
    def test_advance_stamps_target_only(self):
        plan = plan_transition(S.STARTED, S.APPLIED, True, NOW)
        assert plan.to_stage == S.APPLIED
        assert plan.timestamp_updates == {"applied_at": NOW}

    def test_revert_clears_departed_stage(self):
        plan = plan_transition(S.IN_PROGRESS, S.IN_PROGRESS, False, NOW)
        assert plan.to_stage == S.APPLIED
        assert plan.timestamp_updates == {"in_progress_at": None}
        assert not plan.is_noop

    @pytest.mark.parametrize(
        "current,requested,checked",
        [
            (c, r, chk)
            for c, r, chk in product(STAGE_ORDER, STAGE_ORDER, (True, False))
            if (chk and stage_index(r) == stage_index(c) + 1) or (not chk and r == c)
        ],
    )
    def test_every_valid_transition_keeps_timestamps_consistent(self, current, requested, checked):
        timestamps = _stamped_up_to(current)
        plan = plan_transition(current, requested, checked, NOW)
        timestamps.update(plan.timestamp_updates)
        assert stage_timestamps_consistent(plan.to_stage, timestamps)

    def test_consistency_check_detects_leftover_stamp(self):
        timestamps = _stamped_up_to(S.IN_PROGRESS)
        assert not stage_timestamps_consistent(S.APPLIED, timestamps)


class TestDisplayStatus:
    def test_approved_40_months_ago_with_36_month_validity_is_expired(self):
        approved_at = datetime(2022, 2, 1, tzinfo=timezone.utc)
        status = compute_display_status(S.APPROVED, approved_at, 36, NOW)
        assert status == CertificationDisplayStatus.EXPIRED

    def test_approved_within_validity(self):
        approved_at = datetime(2024, 6, 1, tzinfo=timezone.utc)
        status = compute_display_status(S.APPROVED, approved_at, 36, NOW)
        assert status == CertificationDisplayStatus.APPROVED

    def test_expiry_boundary_is_not_expired(self):
        approved_at = datetime(2022, 6, 1, 12, 0, tzinfo=timezone.utc)
        assert expiry_date(approved_at, 36) == NOW
        assert compute_display_status(S.APPROVED, approved_at, 36, NOW) == S.APPROVED.value

    def test_calendar_month_arithmetic(self):
        approved_at = datetime(2024, 1, 31, tzinfo=timezone.utc)
        assert expiry_date(approved_at, 1) == datetime(2024, 2, 29, tzinfo=timezone.utc)

    @pytest.mark.parametrize("stage", [S.STARTED, S.APPLIED, S.IN_PROGRESS])
    def test_non_approved_stages_pass_through(self, stage):
        assert compute_display_status(stage, None, 12, NOW).value == stage.value

    def test_naive_timestamps_treated_as_utc(self):
        approved_at = datetime(2022, 2, 1)
        assert compute_display_status(S.APPROVED, approved_at, 36, NOW) == CertificationDisplayStatus.EXPIRED

    def test_repeated_reads_agree(self):
        approved_at = datetime(2022, 2, 1, tzinfo=timezone.utc)
        first = compute_display_status(S.APPROVED, approved_at, 36, NOW)
        second = compute_display_status(S.APPROVED, approved_at, 36, NOW)
        assert first == second
