"""Per-source results and the run summary."""

import datetime
from dataclasses import dataclass, field
from typing import Any


@dataclass
class IngestionResult:
    """Outcome of one source for one date."""

    success: bool
    source: str
    date: datetime.date
    records_processed: int = 0
    status: str = "success"
    error: str | None = None
    error_details: dict[str, Any] | None = None
    note: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "success": self.success,
            "source": self.source,
            "date": self.date.isoformat(),
            "records_processed": self.records_processed,
            "status": self.status,
        }
        if self.error:
            data["error"] = self.error
        if self.error_details:
            data["error_details"] = self.error_details
        if self.note:
            data["note"] = self.note
        return data


@dataclass
class IngestionSummary:
    date: datetime.date
    started_at: datetime.datetime
    completed_at: datetime.datetime | None = None
    results: list[IngestionResult] = field(default_factory=list)

    @property
    def total_sources(self) -> int:
        return len(self.results)

    @property
    def successful_sources(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed_sources(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def partial_sources(self) -> int:
        return sum(1 for r in self.results if r.status == "partial")

    @property
    def total_records(self) -> int:
        return sum(r.records_processed for r in self.results)

    @property
    def duration_seconds(self) -> float:
        if self.completed_at is None:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": round(self.duration_seconds, 2),
            "total_sources": self.total_sources,
            "successful_sources": self.successful_sources,
            "failed_sources": self.failed_sources,
            "partial_sources": self.partial_sources,
            "total_records": self.total_records,
            "results": [r.to_dict() for r in self.results],
        }
