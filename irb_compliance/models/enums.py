"""Enumerations for the IRB compliance workflow engine."""

from enum import Enum


class SubmissionType(str, Enum):
    """Kind of IRB review request."""

    INITIAL = "INITIAL"
    AMENDMENT = "AMENDMENT"
    CONTINUING_REVIEW = "CONTINUING_REVIEW"
    REPORTABLE_EVENT = "REPORTABLE_EVENT"
    STUDY_CLOSURE = "STUDY_CLOSURE"
    EMERGENCY_USE = "EMERGENCY_USE"


class ReviewType(str, Enum):
    """Level of IRB review a submission receives."""

    FULL_BOARD = "FULL_BOARD"
    EXPEDITED = "EXPEDITED"
    EXEMPT = "EXEMPT"
    NOT_HUMAN_SUBJECTS = "NOT_HUMAN_SUBJECTS"


class SubmissionStatus(str, Enum):
    """Lifecycle status of an IRB submission."""

    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    PENDING_CLARIFICATION = "PENDING_CLARIFICATION"
    APPROVED = "APPROVED"
    APPROVED_WITH_CONDITIONS = "APPROVED_WITH_CONDITIONS"
    DISAPPROVED = "DISAPPROVED"
    WITHDRAWN = "WITHDRAWN"


class IRBDecision(str, Enum):
    """Board action recorded against a submission."""

    APPROVED = "APPROVED"
    APPROVED_WITH_CONDITIONS = "APPROVED_WITH_CONDITIONS"
    DISAPPROVED = "DISAPPROVED"
    DEFERRED = "DEFERRED"
    TABLED = "TABLED"
    REQUIRES_MODIFICATIONS = "REQUIRES_MODIFICATIONS"


class ReviewerRole(str, Enum):
    """Role a reviewer plays on a submission."""

    PRIMARY = "PRIMARY"
    SECONDARY = "SECONDARY"
    MEMBER = "MEMBER"


class ReviewStatus(str, Enum):
    """Status of an individual reviewer's review."""

    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ReviewRecommendation(str, Enum):
    """Recommendation a reviewer gives to the board."""

    APPROVE = "APPROVE"
    APPROVE_WITH_CONDITIONS = "APPROVE_WITH_CONDITIONS"
    REQUIRES_MODIFICATIONS = "REQUIRES_MODIFICATIONS"
    DISAPPROVE = "DISAPPROVE"
    DEFER = "DEFER"


class DocumentType(str, Enum):
    """Type of a document attached to a submission."""

    PROTOCOL = "PROTOCOL"
    INFORMED_CONSENT = "INFORMED_CONSENT"
    INVESTIGATOR_BROCHURE = "INVESTIGATOR_BROCHURE"
    RECRUITMENT_MATERIAL = "RECRUITMENT_MATERIAL"
    CASE_REPORT_FORM = "CASE_REPORT_FORM"
    APPROVAL_LETTER = "APPROVAL_LETTER"
    OTHER = "OTHER"


class AESeverity(str, Enum):
    """Clinical severity grade of an adverse event."""

    MILD = "MILD"
    MODERATE = "MODERATE"
    SEVERE = "SEVERE"
    LIFE_THREATENING = "LIFE_THREATENING"


class AESeriousness(str, Enum):
    """Regulatory seriousness of an adverse event."""

    NON_SERIOUS = "NON_SERIOUS"
    SERIOUS = "SERIOUS"


class AEExpectedness(str, Enum):
    """Whether the event is listed in the reference safety information."""

    EXPECTED = "EXPECTED"
    UNEXPECTED = "UNEXPECTED"


class AERelatedness(str, Enum):
    """Causality assessment, ordered from least to most related."""

    UNRELATED = "UNRELATED"
    UNLIKELY = "UNLIKELY"
    POSSIBLE = "POSSIBLE"
    PROBABLE = "PROBABLE"
    DEFINITE = "DEFINITE"


class AEOutcome(str, Enum):
    """Participant outcome of an adverse event."""

    RECOVERED = "RECOVERED"
    RECOVERING = "RECOVERING"
    NOT_RECOVERED = "NOT_RECOVERED"
    RECOVERED_WITH_SEQUELAE = "RECOVERED_WITH_SEQUELAE"
    FATAL = "FATAL"
    UNKNOWN = "UNKNOWN"


class AEStatus(str, Enum):
    """Reporting status of an adverse event."""

    DRAFT = "DRAFT"
    REQUIRES_FOLLOWUP = "REQUIRES_FOLLOWUP"
    REPORTED = "REPORTED"


class ReportingTimeline(str, Enum):
    """Regulatory reporting timeline tier."""

    IMMEDIATE = "IMMEDIATE"
    EXPEDITED_7_DAY = "EXPEDITED_7_DAY"
    EXPEDITED_15_DAY = "EXPEDITED_15_DAY"
    ROUTINE = "ROUTINE"


class DeviationType(str, Enum):
    """Category of protocol deviation."""

    INCLUSION_EXCLUSION = "INCLUSION_EXCLUSION"
    INFORMED_CONSENT = "INFORMED_CONSENT"
    RANDOMIZATION = "RANDOMIZATION"
    STUDY_PROCEDURE = "STUDY_PROCEDURE"
    CONCOMITANT_MEDICATION = "CONCOMITANT_MEDICATION"
    VISIT_WINDOW = "VISIT_WINDOW"
    LABORATORY = "LABORATORY"
    DOSING = "DOSING"
    SAFETY_MONITORING = "SAFETY_MONITORING"
    DATA_COLLECTION = "DATA_COLLECTION"
    OTHER = "OTHER"


class DeviationSeverity(str, Enum):
    """Severity of a protocol deviation."""

    MINOR = "MINOR"
    MAJOR = "MAJOR"
    CRITICAL = "CRITICAL"


class DeviationStatus(str, Enum):
    """Lifecycle status of a protocol deviation."""

    REPORTED = "REPORTED"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


class ComplianceStatus(str, Enum):
    """Status of an externally tracked compliance metric."""

    COMPLIANT = "COMPLIANT"
    AT_RISK = "AT_RISK"
    NON_COMPLIANT = "NON_COMPLIANT"
    CRITICAL = "CRITICAL"
