"""Document and compliance-metric lookups."""

from collections.abc import Iterable
from datetime import date, datetime, timedelta
from typing import Protocol

from irb_compliance.models.documents import ComplianceMetric, DocumentRecord
from irb_compliance.models.enums import DocumentType


class DocumentRegistry(Protocol):
    """Read access to study documents."""

    def has_document_of_type(
        self, document_ids: list[str], document_type: DocumentType
    ) -> bool: ...

    def documents_expiring(self, today: date, within_days: int) -> list[DocumentRecord]: ...


class InMemoryDocumentRegistry:
    """Document registry over a fixed collection of records."""

    def __init__(self, documents: Iterable[DocumentRecord] = ()):
        self._documents = {doc.id: doc for doc in documents}

    def add(self, document: DocumentRecord) -> None:
        self._documents[document.id] = document

    def has_document_of_type(
        self, document_ids: list[str], document_type: DocumentType
    ) -> bool:
        for document_id in document_ids:
            doc = self._documents.get(document_id)
            if doc is not None and doc.document_type == document_type:
                return True
        return False

    def documents_expiring(self, today: date, within_days: int) -> list[DocumentRecord]:
        """Documents whose expiration falls between today and the horizon."""
        horizon = today + timedelta(days=within_days)
        return [
            doc
            for doc in self._documents.values()
            if doc.expiration_date is not None and today <= doc.expiration_date <= horizon
        ]


class ComplianceMetricSource(Protocol):
    """Externally tracked compliance metrics."""

    def metrics_measured_since(self, since: datetime) -> list[ComplianceMetric]: ...


class InMemoryComplianceMetricSource:
    """Metric source over a fixed collection of measurements."""

    def __init__(self, metrics: Iterable[ComplianceMetric] = ()):
        self._metrics = list(metrics)

    def add(self, metric: ComplianceMetric) -> None:
        self._metrics.append(metric)

    def metrics_measured_since(self, since: datetime) -> list[ComplianceMetric]:
        return [m for m in self._metrics if m.last_measured >= since]
