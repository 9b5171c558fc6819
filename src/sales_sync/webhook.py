"""Single-record push path for estimate status changes.

The billing platform calls this when an estimate is accepted or declined. The
receiver is independent of any web framework: it takes the method, headers and
raw body and returns a :class:`WebhookResponse`.

Every delivery that gets past authentication and parsing writes exactly one
audit row before responding, including unexpected faults.
"""

from __future__ import annotations

import hmac
import json
import logging
from typing import Any, Mapping

from sales_sync.classify import parse_amount, parse_estimate_date
from sales_sync.config import SyncConfig
from sales_sync.departments import DepartmentNormalizer
from sales_sync.errors import ValidationError, WriteError
from sales_sync.model import SaleRecord, SyncLogEntry, WebhookResponse
from sales_sync.reps import RepDirectory
from sales_sync.runner import Notifier, notify
from sales_sync.store import Store
from sales_sync.writer import BatchWriter

logger = logging.getLogger(__name__)

SECRET_HEADER = "x-webhook-secret"
DELETE_STATUSES = {"declined", "rejected"}
# Payload field names checked on acceptance, in the order they are reported
REQUIRED_FIELDS = ("estimate_id", "date", "salesperson_name", "cf_d_partement")


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


class WebhookReceiver:
    def __init__(
        self, config: SyncConfig, store: Store, *, notifier: Notifier | None = None
    ) -> None:
        self.config = config
        self.store = store
        self.writer = BatchWriter(store)
        self.normalizer = DepartmentNormalizer(config.department_map)
        self.notifier = notifier

    def handle(
        self, method: str, headers: Mapping[str, str], body: bytes | str
    ) -> WebhookResponse:
        if method.upper() != "POST":
            return WebhookResponse(405, {"error": "Method not allowed"})

        lowered = {k.lower(): v for k, v in headers.items()}
        if not self._authorized(lowered.get(SECRET_HEADER, "")):
            logger.warning("Unauthorized webhook attempt")
            return WebhookResponse(401, {"error": "Unauthorized"})

        try:
            payload = json.loads(body or b"")
        except (ValueError, UnicodeDecodeError):
            return WebhookResponse(400, {"error": "Invalid JSON"})
        if not isinstance(payload, dict):
            return WebhookResponse(400, {"error": "Invalid JSON"})

        external_id = _text(payload.get("estimate_id") or payload.get("estimate_number"))
        try:
            return self._dispatch(payload, external_id)
        except ValidationError as exc:
            logger.warning("Rejected webhook for %s: %s", external_id or "?", exc)
            self._log_quietly(
                SyncLogEntry("error", 400, external_id or None, str(exc), payload)
            )
            body_out: dict[str, Any] = {"error": str(exc)}
            if exc.missing:
                body_out["missing"] = exc.missing
            return WebhookResponse(400, body_out)
        except Exception as exc:
            logger.exception("Webhook processing error for %s", external_id or "?")
            self._log_quietly(
                SyncLogEntry("error", 500, external_id or None, str(exc), payload)
            )
            return WebhookResponse(500, {"error": "Internal error", "message": str(exc)})

    def _authorized(self, provided: str) -> bool:
        expected = self.config.webhook_secret
        if not expected:  # No secret configured: accept nothing
            return False
        return hmac.compare_digest(provided.encode(), expected.encode())

    def _log_quietly(self, entry: SyncLogEntry) -> None:
        try:
            self.writer.log(entry)
        except WriteError:
            logger.exception("Could not record webhook outcome")

    def _dispatch(self, payload: dict[str, Any], external_id: str) -> WebhookResponse:
        status = _text(payload.get("status")).lower()

        if status in DELETE_STATUSES:
            return self._delete(payload, external_id)
        if status == "accepted":
            return self._upsert(payload, external_id)

        self.writer.log(SyncLogEntry("ignored", 200, external_id or None, payload=payload))
        logger.info("Ignored estimate %s with status %r", external_id, status)
        return WebhookResponse(
            200, {"action": "ignored", "external_id": external_id, "status": status}
        )

    def _delete(self, payload: dict[str, Any], external_id: str) -> WebhookResponse:
        if not external_id:
            raise ValidationError("Missing required fields: estimate_id", missing=["estimate_id"])
        removed = self.writer.delete_many([external_id])
        self.writer.log(SyncLogEntry("deleted", 200, external_id, payload=payload))
        logger.info("Deleted estimate %s (%d row)", external_id, removed)
        if removed:
            notify(self.notifier, {"source": "webhook", "upserted": 0, "deleted": removed})
        return WebhookResponse(200, {"action": "deleted", "external_id": external_id})

    def _upsert(self, payload: dict[str, Any], external_id: str) -> WebhookResponse:
        record = self._build_record(payload, external_id)
        self.writer.upsert_many([record])
        self.writer.log(SyncLogEntry("upserted", 200, external_id, payload=payload))
        logger.info(
            "Upserted estimate %s: %s, %.2f", external_id, record.client_name, record.amount
        )
        notify(self.notifier, {"source": "webhook", "upserted": 1, "deleted": 0})
        return WebhookResponse(
            200, {"action": "upserted", "external_id": external_id, "amount": record.amount}
        )

    def _build_record(self, payload: dict[str, Any], external_id: str) -> SaleRecord:
        label = _text(payload.get("cf_d_partement") or payload.get("department"))
        rep_name = _text(payload.get("salesperson_name"))
        raw_date = _text(payload.get("date"))
        present = {
            "estimate_id": external_id,
            "date": raw_date,
            "salesperson_name": rep_name,
            "cf_d_partement": label,
        }
        missing = [name for name in REQUIRED_FIELDS if not present[name]]
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}", missing=missing
            )

        sale_date = parse_estimate_date(raw_date)
        if sale_date is None:
            raise ValidationError(f"Invalid date: {raw_date}", value=raw_date)

        directory = RepDirectory(self.store).load()
        rep = directory.lookup(rep_name)
        if rep is None:
            raise ValidationError(f"Rep not found: {rep_name}", value=rep_name)

        department = self.normalizer.normalize(label)
        if department is None:
            raise ValidationError(f"Unknown department: {label}", value=label)

        raw_amount = payload.get("total")
        if raw_amount in (None, ""):
            raw_amount = payload.get("sub_total")
        try:
            amount = parse_amount(raw_amount)
        except ValueError as exc:
            raise ValidationError(f"Invalid amount: {raw_amount}", value=str(raw_amount)) from exc
        if amount < 0:
            raise ValidationError(f"Invalid amount: {raw_amount}", value=str(raw_amount))

        office = self.config.office_for(_text(payload.get("organization_id"))) or rep.office
        if office is None:
            raise ValidationError(f"No office for rep: {rep_name}", value=rep_name)

        return SaleRecord(
            external_id=external_id,
            sale_date=sale_date,
            client_name=_text(payload.get("customer_name")),
            amount=amount,
            quote_number=_text(payload.get("estimate_number")),
            rep_id=rep.id,
            department=department,
            raw_department_label=label,
            office=office,
            status="accepted",
        )


__all__ = ["WebhookReceiver"]
