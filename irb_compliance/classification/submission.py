"""Scheduling and numbering rules for IRB submissions."""

from datetime import date

from irb_compliance.models.enums import (
    IRBDecision,
    ReviewType,
    SubmissionStatus,
    SubmissionType,
)

CONTINUING_REVIEW_YEARS = 1
EXEMPT_CONTINUING_REVIEW_YEARS = 3

_DECISION_STATUS: dict[IRBDecision, SubmissionStatus] = {
    IRBDecision.APPROVED: SubmissionStatus.APPROVED,
    IRBDecision.APPROVED_WITH_CONDITIONS: SubmissionStatus.APPROVED_WITH_CONDITIONS,
    IRBDecision.DISAPPROVED: SubmissionStatus.DISAPPROVED,
    IRBDecision.DEFERRED: SubmissionStatus.PENDING_CLARIFICATION,
    IRBDecision.TABLED: SubmissionStatus.PENDING_CLARIFICATION,
    IRBDecision.REQUIRES_MODIFICATIONS: SubmissionStatus.PENDING_CLARIFICATION,
}

_TYPE_PREFIX: dict[SubmissionType, str] = {
    SubmissionType.INITIAL: "INI",
    SubmissionType.AMENDMENT: "AMD",
    SubmissionType.CONTINUING_REVIEW: "CR",
    SubmissionType.REPORTABLE_EVENT: "RE",
    SubmissionType.STUDY_CLOSURE: "SC",
    SubmissionType.EMERGENCY_USE: "EU",
}

APPROVAL_DECISIONS = frozenset(
    {IRBDecision.APPROVED, IRBDecision.APPROVED_WITH_CONDITIONS}
)
FINAL_DECISIONS = frozenset(
    {
        IRBDecision.APPROVED,
        IRBDecision.APPROVED_WITH_CONDITIONS,
        IRBDecision.DISAPPROVED,
    }
)


def status_from_decision(decision: IRBDecision) -> SubmissionStatus:
    """Map a board decision onto the submission status it produces."""
    return _DECISION_STATUS[decision]


def add_years(start: date, years: int) -> date:
    """Add whole years, moving Feb 29 to Feb 28 in non-leap years."""
    try:
        return start.replace(year=start.year + years)
    except ValueError:
        return start.replace(year=start.year + years, day=28)


def continuing_review_interval_years(review_type: ReviewType) -> int:
    """Exempt studies are re-reviewed every three years, others yearly."""
    if review_type == ReviewType.EXEMPT:
        return EXEMPT_CONTINUING_REVIEW_YEARS
    return CONTINUING_REVIEW_YEARS


def continuing_review_due(review_type: ReviewType, today: date) -> date:
    """Compute the next continuing-review due date from today."""
    return add_years(today, continuing_review_interval_years(review_type))


def approval_expiration_date(review_type: ReviewType, today: date) -> date:
    """Default approval expiration, matching the continuing-review cycle."""
    return continuing_review_due(review_type, today)


def submission_number(
    study_id: str, submission_type: SubmissionType, year: int, sequence: int
) -> str:
    """Build a human-readable submission number.

    Format: {TYPE}-{year}-{study prefix}-{sequence}
    Example: INI-2024-a1b2c3d4-001
    """
    prefix = _TYPE_PREFIX[submission_type]
    return f"{prefix}-{year}-{study_id[:8]}-{sequence:03d}"


def sae_report_id(study_id: str, year: int, sequence: int) -> str:
    """Build a human-readable SAE report identifier.

    Format: SAE-{year}-{study prefix}-{sequence}
    Example: SAE-2024-a1b2c3d4-0001
    """
    return f"SAE-{year}-{study_id[:8]}-{sequence:04d}"
