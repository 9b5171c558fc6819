"""Domain models for the sales ledger synchroniser.

These dataclasses represent the entities shared throughout the tool: sale
records written to the local ledger, the reference reps they point at, audit
log rows, and the outcome of classifying or synchronising estimates.
"""

from __future__ import annotations  # Postponed evaluation of annotations (PEP 563)

from dataclasses import dataclass, field  # Dataclass utilities
from datetime import date, timedelta
from typing import Any, Literal  # Constrained string types for clarity

Office = Literal["QC", "MTL"]  # One organization per physical office
SaleStatus = Literal["accepted", "invoiced"]  # Only these live in the ledger
DispositionKind = Literal["upsert", "delete", "skip"]
SyncAction = Literal[
    "upserted", "deleted", "ignored", "error", "sync_manual", "sync_auto"
]  # Audit labels
Trigger = Literal["manual", "scheduled"]


def week_bounds(sale_date: date) -> tuple[date, date]:
    """Return the Monday and Sunday of the week containing ``sale_date``."""
    start = sale_date - timedelta(days=sale_date.weekday())
    return start, start + timedelta(days=6)


@dataclass(slots=True)
class SaleRecord:
    """A quote accepted or invoiced in the billing platform."""

    external_id: str  # Provider estimate id, the idempotency key
    sale_date: date
    client_name: str
    amount: float  # Currency-agnostic, never negative
    quote_number: str
    rep_id: str  # Must reference a known Rep
    department: str  # Canonical code
    raw_department_label: str  # Label as typed in the billing platform
    office: Office
    status: SaleStatus

    @property
    def week_start(self) -> date:
        return week_bounds(self.sale_date)[0]

    @property
    def week_end(self) -> date:
        return week_bounds(self.sale_date)[1]

    def to_row(self) -> dict[str, Any]:
        """Flatten to the column layout of the ``sales`` table."""
        return {
            "external_id": self.external_id,
            "sale_date": self.sale_date.isoformat(),
            "client_name": self.client_name,
            "amount": self.amount,
            "quote_number": self.quote_number,
            "rep_id": self.rep_id,
            "department": self.department,
            "raw_department_label": self.raw_department_label,
            "office": self.office,
            "status": self.status,
            "week_start": self.week_start.isoformat(),
            "week_end": self.week_end.isoformat(),
        }


@dataclass(slots=True, frozen=True)
class Rep:
    """Sales representative, managed outside this tool."""

    id: str
    name: str
    office: Office | None = None
    active: bool = True

    def __str__(self) -> str:
        return f"rep(id={self.id}, name={self.name}, office={self.office})"


@dataclass(slots=True)
class SyncLogEntry:
    """Append-only audit row written once per webhook or sweep."""

    action: SyncAction
    status_code: int
    external_id: str | None = None
    error_message: str | None = None
    payload: dict[str, Any] | None = None  # Raw webhook body, if any
    received_at: str | None = None  # Filled by the store when omitted


@dataclass(slots=True)
class Disposition:
    """What to do with one raw estimate."""

    kind: DispositionKind
    external_id: str
    record: SaleRecord | None = None  # Set for upserts only
    reason: str | None = None  # Why a record was skipped

    @property
    def is_upsert(self) -> bool:
        return self.kind == "upsert"


@dataclass(slots=True)
class SyncResult:
    """Aggregate outcome of one sweep."""

    upserted: int = 0
    deleted: int = 0
    skipped: int = 0  # Upserts dropped for an unknown rep or department
    errors: list[str] = field(default_factory=list)  # Page-level failures
    duration_ms: int = 0
    fatal: str | None = None  # Set when the whole sweep failed

    @property
    def ok(self) -> bool:
        return self.fatal is None

    def to_payload(self) -> dict[str, Any]:
        if not self.ok:
            return {"error": self.fatal}
        return {
            "upserted": self.upserted,
            "deleted": self.deleted,
            "skipped": self.skipped,
            "errors": list(self.errors),
            "duration_ms": self.duration_ms,
        }


@dataclass(slots=True)
class WebhookResponse:
    """Framework-neutral HTTP answer to a webhook delivery."""

    status: int
    body: dict[str, Any]


__all__ = [
    "Disposition",
    "DispositionKind",
    "Office",
    "Rep",
    "SaleRecord",
    "SaleStatus",
    "SyncAction",
    "SyncLogEntry",
    "SyncResult",
    "Trigger",
    "WebhookResponse",
    "week_bounds",
]
