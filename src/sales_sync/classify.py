from __future__ import annotations

import math
from datetime import date
from typing import Any, Iterable

from sales_sync.departments import DepartmentNormalizer
from sales_sync.model import Disposition, Office, SaleRecord, SaleStatus
from sales_sync.reps import RepDirectory


def parse_estimate_date(value: Any) -> date | None:
    """Parse the ``YYYY-MM-DD`` prefix of a provider date, or return None."""
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or len(value) < 10:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def record_year(raw: dict[str, Any]) -> int | None:
    parsed = parse_estimate_date(raw.get("date"))
    return parsed.year if parsed else None


def department_label(raw: dict[str, Any]) -> Any:
    """The "Département" custom field, falling back to the plain field."""
    label = raw.get("cf_d_partement")
    return label if label is not None else raw.get("department")


def parse_amount(value: Any) -> float:
    if value in (None, ""):
        return 0.0
    amount = float(str(value).replace(",", "").replace("$", "").strip())
    if not math.isfinite(amount):
        raise ValueError(f"non-finite amount: {value!r}")
    return amount


def status_disposition(raw_status: Any) -> SaleStatus | None:
    """Map a provider status to the ledger status, or None for a delete."""
    status = str(raw_status or "").lower()
    # Substring match: "unpaid" and "partially_paid" also count as invoiced
    if "invoiced" in status or "paid" in status:
        return "invoiced"
    if status == "accepted":
        return "accepted"
    return None  # declined, rejected, draft, sent, expired, ...


class RecordClassifier:
    """Decide what a sweep does with each raw estimate."""

    def __init__(
        self,
        directory: RepDirectory,
        normalizer: DepartmentNormalizer,
        retention_years: Iterable[int],
    ) -> None:
        self.directory = directory
        self.normalizer = normalizer
        self.retention_years = frozenset(retention_years)

    def classify(self, raw: dict[str, Any], office: Office) -> Disposition:
        external_id = str(raw.get("estimate_id") or "").strip()
        if not external_id:
            return Disposition("skip", "", reason="missing estimate id")
        sale_date = parse_estimate_date(raw.get("date"))

        # Out-of-window estimates are left alone: neither written nor deleted
        if sale_date is None or sale_date.year not in self.retention_years:
            return Disposition("skip", external_id, reason="outside retention window")

        status = status_disposition(raw.get("status"))
        if status is None:
            return Disposition("delete", external_id)

        rep = self.directory.lookup(raw.get("salesperson_name"))
        if rep is None:
            return Disposition("skip", external_id, reason="unknown rep")
        label = department_label(raw)
        department = self.normalizer.normalize(label)
        if department is None:
            return Disposition("skip", external_id, reason="unknown department")

        try:
            amount = parse_amount(raw.get("total"))
        except ValueError:
            return Disposition("skip", external_id, reason="invalid amount")
        if amount < 0:
            return Disposition("skip", external_id, reason="negative amount")

        record = SaleRecord(
            external_id=external_id,
            sale_date=sale_date,
            client_name=str(raw.get("customer_name") or ""),
            amount=amount,
            quote_number=str(raw.get("estimate_number") or ""),
            rep_id=rep.id,
            department=department,
            raw_department_label=str(label),
            office=office,
            status=status,
        )
        return Disposition("upsert", external_id, record=record)


__all__ = [
    "RecordClassifier",
    "department_label",
    "parse_amount",
    "parse_estimate_date",
    "record_year",
    "status_disposition",
]
