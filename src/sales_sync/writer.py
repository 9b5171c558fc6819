"""Idempotent batch writes and audit logging against the local store."""

from __future__ import annotations

import logging
from typing import Iterable

from sales_sync.errors import WriteError
from sales_sync.model import SaleRecord, SyncLogEntry
from sales_sync.store import STORE_ERRORS, Store

logger = logging.getLogger(__name__)


class BatchWriter:
    """Upsert by external id, delete by external-id set, append audit rows.

    Each call succeeds or fails as a unit; a backend failure surfaces as
    :class:`WriteError` with the original exception chained.
    """

    def __init__(self, store: Store) -> None:
        self.store = store

    def upsert_many(self, records: Iterable[SaleRecord]) -> int:
        """Replace-or-insert ``records`` keyed on ``external_id``.

        Duplicate ids inside one batch collapse to the last occurrence, so the
        store never sees the same key twice in one statement.
        """
        by_id: dict[str, SaleRecord] = {}
        for record in records:
            by_id[record.external_id] = record
        if not by_id:
            return 0
        try:
            self.store.upsert_sales([r.to_row() for r in by_id.values()])
        except STORE_ERRORS as exc:
            raise WriteError(f"Upsert failed: {exc}") from exc
        return len(by_id)

    def delete_many(self, external_ids: Iterable[str]) -> int:
        """Delete every row whose id is in ``external_ids``; return rows removed."""
        ids = list(dict.fromkeys(external_ids))
        if not ids:
            return 0
        try:
            return self.store.delete_sales(ids)
        except STORE_ERRORS as exc:
            raise WriteError(f"Delete failed: {exc}") from exc

    def log(self, entry: SyncLogEntry) -> None:
        try:
            self.store.insert_log(entry)
        except STORE_ERRORS as exc:
            raise WriteError(f"Audit log write failed: {exc}") from exc
        logger.debug("Logged %s (%s) for %s", entry.action, entry.status_code, entry.external_id)


__all__ = ["BatchWriter"]
