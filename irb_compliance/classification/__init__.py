"""Classification rules for compliance events.

This module provides pure rule functions, including:
- Serious Adverse Event determination and reporting timelines
- Protocol deviation reportability
- Submission scheduling and numbering
"""

from irb_compliance.classification.adverse_event import (
    AEAssessment,
    ExpeditedAssessment,
    SAECriterion,
    assess_expedited_reporting,
    assess_reporting_requirements,
    check_timeline_compliance,
    follow_up_schedule,
    is_serious_adverse_event,
    reporting_deadline,
    requires_immediate_notification,
)
from irb_compliance.classification.deviation import (
    DeviationAssessment,
    assess_deviation_reporting,
    deviation_requires_immediate_notification,
)
from irb_compliance.classification.submission import (
    continuing_review_due,
    sae_report_id,
    status_from_decision,
    submission_number,
)

__all__ = [
    "AEAssessment",
    "DeviationAssessment",
    "ExpeditedAssessment",
    "SAECriterion",
    "assess_deviation_reporting",
    "assess_expedited_reporting",
    "assess_reporting_requirements",
    "check_timeline_compliance",
    "continuing_review_due",
    "deviation_requires_immediate_notification",
    "follow_up_schedule",
    "is_serious_adverse_event",
    "reporting_deadline",
    "requires_immediate_notification",
    "sae_report_id",
    "status_from_decision",
    "submission_number",
]
