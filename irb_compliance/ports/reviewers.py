"""Reviewer availability."""

from typing import Protocol

from irb_compliance.models.enums import ReviewType


class ReviewerPool(Protocol):
    """Source of reviewers available for automatic assignment."""

    def available_reviewers(self, review_type: ReviewType) -> list[str]: ...


class StaticReviewerPool:
    """Fixed reviewer lists keyed by review type."""

    def __init__(self, reviewers: dict[ReviewType, list[str]] | None = None):
        self._reviewers = reviewers or {}

    def available_reviewers(self, review_type: ReviewType) -> list[str]:
        return list(self._reviewers.get(review_type, []))
