"""Workflow engine configuration."""

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_AUTO_APPROVE_EXEMPT_CATEGORIES = frozenset({"1", "2", "4"})
DEFAULT_EXPEDITED_REVIEW_DAYS = 7
DEFAULT_CONTINUING_REVIEW_WINDOW_DAYS = 30
DEFAULT_DOCUMENT_EXPIRY_WINDOW_DAYS = 30
DEFAULT_COMPLIANCE_LOOKBACK_HOURS = 24


def _parse_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {value}")
    return value


def _parse_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    if raw.lower() in ("1", "true", "yes", "on"):
        return True
    if raw.lower() in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


@dataclass
class WorkflowConfig:
    """Configuration for the workflow engine and scheduler."""

    auto_approve_exempt_categories: frozenset[str] = DEFAULT_AUTO_APPROVE_EXEMPT_CATEGORIES
    expedited_reviewers: list[str] = field(default_factory=list)
    expedited_review_days: int = DEFAULT_EXPEDITED_REVIEW_DAYS
    continuing_review_window_days: int = DEFAULT_CONTINUING_REVIEW_WINDOW_DAYS
    document_expiry_window_days: int = DEFAULT_DOCUMENT_EXPIRY_WINDOW_DAYS
    compliance_lookback_hours: int = DEFAULT_COMPLIANCE_LOOKBACK_HOURS
    strict_audit: bool = False
    data_dir: Path = Path("data")
    audit_dir: Path = Path("audit_logs")

    @classmethod
    def from_env(cls) -> "WorkflowConfig":
        """Create config from environment variables.

        Optional environment variables:
            IRB_AUTO_APPROVE_EXEMPT_CATEGORIES: Comma-separated exempt category
                codes approved without board review (default: 1,2,4)
            IRB_EXPEDITED_REVIEWERS: Comma-separated reviewer ids for
                automatic expedited assignment (default: none)
            IRB_EXPEDITED_REVIEW_DAYS: Days an expedited reviewer has (default: 7)
            IRB_CONTINUING_REVIEW_WINDOW_DAYS: Look-ahead for due continuing
                reviews (default: 30)
            IRB_DOCUMENT_EXPIRY_WINDOW_DAYS: Look-ahead for expiring documents
                (default: 30)
            IRB_COMPLIANCE_LOOKBACK_HOURS: How far back compliance alerts are
                collected (default: 24)
            IRB_STRICT_AUDIT: Block commits when the audit sink fails (default: false)
            IRB_DATA_DIR: Directory for JSON record storage (default: data)
            IRB_AUDIT_DIR: Directory for audit logs (default: audit_logs)

        Raises:
            ValueError: If a numeric or boolean variable cannot be parsed.
        """
        categories = os.getenv("IRB_AUTO_APPROVE_EXEMPT_CATEGORIES")
        return cls(
            auto_approve_exempt_categories=(
                frozenset(_parse_list(categories))
                if categories is not None
                else DEFAULT_AUTO_APPROVE_EXEMPT_CATEGORIES
            ),
            expedited_reviewers=_parse_list(os.getenv("IRB_EXPEDITED_REVIEWERS", "")),
            expedited_review_days=_parse_int(
                "IRB_EXPEDITED_REVIEW_DAYS", DEFAULT_EXPEDITED_REVIEW_DAYS
            ),
            continuing_review_window_days=_parse_int(
                "IRB_CONTINUING_REVIEW_WINDOW_DAYS", DEFAULT_CONTINUING_REVIEW_WINDOW_DAYS
            ),
            document_expiry_window_days=_parse_int(
                "IRB_DOCUMENT_EXPIRY_WINDOW_DAYS", DEFAULT_DOCUMENT_EXPIRY_WINDOW_DAYS
            ),
            compliance_lookback_hours=_parse_int(
                "IRB_COMPLIANCE_LOOKBACK_HOURS", DEFAULT_COMPLIANCE_LOOKBACK_HOURS
            ),
            strict_audit=_parse_bool("IRB_STRICT_AUDIT", False),
            data_dir=Path(os.getenv("IRB_DATA_DIR", "data")),
            audit_dir=Path(os.getenv("IRB_AUDIT_DIR", "audit_logs")),
        )
