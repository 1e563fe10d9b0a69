"""Tagged result of one ``SourceAdapter.fetch`` call."""

from dataclasses import dataclass, field
from typing import Any, Union

from metrics_hub.records import MetricRecord


@dataclass(frozen=True)
class Ok:
    """Records to merge. ``warnings`` lists entities that failed."""

    records: tuple[MetricRecord, ...]
    warnings: tuple[str, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def partial(self) -> bool:
        return bool(self.warnings)


@dataclass(frozen=True)
class Empty:
    """Nothing to write, and nothing went wrong."""

    reason: str


@dataclass(frozen=True)
class Err:
    """Fatal for this source."""

    message: str
    details: dict[str, Any] = field(default_factory=dict)


FetchOutcome = Union[Ok, Empty, Err]


def ok(records, warnings=(), **metadata) -> Ok:
    return Ok(records=tuple(records), warnings=tuple(warnings), metadata=metadata)
