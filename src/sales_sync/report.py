from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from sales_sync.model import SyncLogEntry, SyncResult, Trigger


def iso_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _serialise_log_entry(entry: SyncLogEntry) -> Dict[str, Any]:
    return {
        "received_at": entry.received_at,
        "action": entry.action,
        "status_code": entry.status_code,
        "external_id": entry.external_id,
        "error_message": entry.error_message,
    }


def build_report_payload(result: SyncResult, trigger: Trigger) -> Dict[str, Any]:
    """Build the JSON payload describing one sweep."""

    return {
        "status": "success" if result.ok else "error",
        "timestamp": iso_timestamp(),
        "trigger": trigger,
        "upserted": result.upserted,
        "deleted": result.deleted,
        "skipped": result.skipped,
        "errors": list(result.errors),
        "duration_ms": result.duration_ms,
        "error": result.fatal,
    }


def build_log_payload(entries: list[SyncLogEntry]) -> list[Dict[str, Any]]:
    return [_serialise_log_entry(e) for e in entries]


def write_report_to_json(result: SyncResult, trigger: Trigger, output_path: Path) -> Path:
    payload = build_report_payload(result, trigger)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)

    return output_path


__all__ = ["build_log_payload", "build_report_payload", "iso_timestamp", "write_report_to_json"]
