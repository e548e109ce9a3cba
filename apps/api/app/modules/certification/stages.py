"""Certification stage machine.

Pure functions over the canonical stage order. No database access: the
service layer reads a record, asks this module what the transition yields,
and persists the result with a conditional update.

    started (0) -> applied (1) -> in_progress (2) -> approved (3)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from dateutil.relativedelta import relativedelta

from app.models.enums import CertificationDisplayStatus, CertificationStage

STAGE_ORDER: tuple[CertificationStage, ...] = (
    CertificationStage.STARTED,
    CertificationStage.APPLIED,
    CertificationStage.IN_PROGRESS,
    CertificationStage.APPROVED,
)

# Stage -> progress column holding the time the stage was reached
STAGE_TIMESTAMP_FIELDS: dict[CertificationStage, str] = {
    CertificationStage.STARTED: "started_at",
    CertificationStage.APPLIED: "applied_at",
    CertificationStage.IN_PROGRESS: "in_progress_at",
    CertificationStage.APPROVED: "approved_at",
}

OUT_OF_ORDER_MESSAGE = "Stages must be completed in order"
REVERT_NOT_CURRENT_MESSAGE = "Only the current stage can be unchecked"


class InvalidTransitionError(ValueError):
    """Requested stage change violates the ordering rules."""


@dataclass(frozen=True)
class StageTransition:
    from_stage: CertificationStage
    to_stage: CertificationStage
    checked: bool
    # Column values to write: the timestamp being set or cleared
    timestamp_updates: dict[str, datetime | None]

    @property
    def is_noop(self) -> bool:
        return self.from_stage == self.to_stage and not self.timestamp_updates


def parse_stage(value: str | CertificationStage) -> CertificationStage:
    try:
        return CertificationStage(value)
    except ValueError:
        raise InvalidTransitionError(f"Unknown stage: {value}")


def stage_index(stage: str | CertificationStage) -> int:
    return STAGE_ORDER.index(parse_stage(stage))


def next_stage(stage: str | CertificationStage) -> CertificationStage | None:
    idx = stage_index(stage) + 1
    return STAGE_ORDER[idx] if idx < len(STAGE_ORDER) else None


def previous_stage(stage: str | CertificationStage) -> CertificationStage:
    """Predecessor in the canonical order. Reverting 'started' stays at 'started'."""
    idx = stage_index(stage)
    return STAGE_ORDER[max(idx - 1, 0)]


def validate_transition(
    current: str | CertificationStage,
    requested: str | CertificationStage,
    checked: bool,
) -> CertificationStage:
    """Return the stage the transition produces, or raise InvalidTransitionError.

    checked=True advances to ``requested``, which must be the immediate
    successor of ``current``. checked=False reverts ``requested``, which must
    be ``current`` itself.
    """
    current_stage = parse_stage(current)
    requested_stage = parse_stage(requested)

    if checked:
        if stage_index(requested_stage) != stage_index(current_stage) + 1:
            raise InvalidTransitionError(OUT_OF_ORDER_MESSAGE)
        return requested_stage

    if requested_stage != current_stage:
        raise InvalidTransitionError(REVERT_NOT_CURRENT_MESSAGE)
    return previous_stage(requested_stage)


def plan_transition(
    current: str | CertificationStage,
    requested: str | CertificationStage,
    checked: bool,
    now: datetime,
) -> StageTransition:
    """Validate and compute the column updates for a transition.

    Advancing stamps the target stage. Reverting clears the departed stage's
    timestamp so that exactly the stages up to the current one are stamped.
    """
    current_stage = parse_stage(current)
    target = validate_transition(current_stage, requested, checked)

    updates: dict[str, datetime | None] = {}
    if checked:
        updates[STAGE_TIMESTAMP_FIELDS[target]] = now
    elif target != current_stage:
        updates[STAGE_TIMESTAMP_FIELDS[current_stage]] = None

    return StageTransition(
        from_stage=current_stage,
        to_stage=target,
        checked=checked,
        timestamp_updates=updates,
    )


def stage_timestamps_consistent(current: str | CertificationStage, timestamps: dict[str, datetime | None]) -> bool:
    """True when exactly the stages at or before ``current`` carry a timestamp."""
    current_idx = stage_index(current)
    for idx, stage in enumerate(STAGE_ORDER):
        is_set = timestamps.get(STAGE_TIMESTAMP_FIELDS[stage]) is not None
        if is_set != (idx <= current_idx):
            return False
    return True


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything stored is UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def expiry_date(approved_at: datetime, validity_months: int) -> datetime:
    return as_utc(approved_at) + relativedelta(months=validity_months)


def compute_display_status(
    current_stage: str | CertificationStage,
    approved_at: datetime | None,
    validity_months: int,
    as_of: datetime,
) -> CertificationDisplayStatus:
    """Status shown to users. 'expired' is derived here, never stored."""
    stage = parse_stage(current_stage)
    if (
        stage == CertificationStage.APPROVED
        and approved_at is not None
        and expiry_date(approved_at, validity_months) < as_utc(as_of)
    ):
        return CertificationDisplayStatus.EXPIRED
    return CertificationDisplayStatus(stage.value)
