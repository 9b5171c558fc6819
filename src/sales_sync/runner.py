from __future__ import annotations

import logging
import time
from typing import Any, Callable

import requests

from sales_sync.classify import RecordClassifier
from sales_sync.config import SyncConfig, load_config
from sales_sync.departments import DepartmentNormalizer
from sales_sync.errors import PageFetchError, WriteError
from sales_sync.model import SyncAction, SyncLogEntry, SyncResult, Trigger
from sales_sync.reps import RepDirectory
from sales_sync.store import Store, open_store
from sales_sync.writer import BatchWriter
from sales_sync.zoho_gateway import EstimatePage, EstimatePaginator, TokenProvider

logger = logging.getLogger(__name__)

Notifier = Callable[[dict[str, Any]], None]

WINDOW_SKIP = "outside retention window"


def audit_action(trigger: Trigger) -> SyncAction:
    return "sync_auto" if trigger == "scheduled" else "sync_manual"


def notify(notifier: Notifier | None, event: dict[str, Any]) -> None:
    """Publish a change event; a failing listener never fails the caller."""
    if notifier is None:
        return
    try:
        notifier(event)
    except Exception:
        logger.exception("Change notifier failed for %s", event.get("source"))


class SyncOrchestrator:
    """Full reconciliation sweep across every configured organization.

    The sweep is strictly sequential: organizations one after another, and
    within an organization each page is classified and written before the
    next page is requested. Only the credential exchange and the rep load are
    fatal; a failed page stops its organization and is reported in ``errors``.
    """

    def __init__(
        self,
        config: SyncConfig,
        store: Store,
        *,
        session: requests.Session | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.writer = BatchWriter(store)
        session = session or requests.Session()
        self.tokens = TokenProvider(config, session)
        self.paginator = EstimatePaginator(config, session)
        self.normalizer = DepartmentNormalizer(config.department_map)
        self.notifier = notifier

    def run(self, trigger: Trigger = "manual") -> SyncResult:
        action = audit_action(trigger)
        started = time.monotonic()
        result = SyncResult()
        logger.info("Sweep started (%s)", action)

        try:
            # 1. Credentials and reference data, both fatal on failure
            token = self.tokens.acquire()
            directory = RepDirectory(self.store).load()
            # Resolved per sweep so a long-lived process rolls over at New Year
            years = self.config.window()
            classifier = RecordClassifier(directory, self.normalizer, years)

            # 2. Page through each organization in turn
            for org in self.config.organizations:
                try:
                    for page in self.paginator.pages(org, token, min(years)):
                        self._apply_page(page, classifier, result)
                except PageFetchError as exc:
                    logger.warning("Page fetch failed: %s", exc)
                    result.errors.append(str(exc))

            # 3. Audit
            result.duration_ms = _elapsed_ms(started)
            self.writer.log(
                SyncLogEntry(
                    action=action,
                    status_code=200,
                    error_message=" | ".join(result.errors) or None,
                )
            )
        except Exception as exc:
            logger.exception("Sweep failed")
            result.fatal = str(exc)
            result.duration_ms = _elapsed_ms(started)
            try:
                self.writer.log(SyncLogEntry(action=action, status_code=500, error_message=str(exc)))
            except WriteError:
                logger.exception("Could not record sweep failure")
            return result

        logger.info(
            "Sweep finished: %d upserted, %d deleted, %d skipped, %d page errors in %d ms",
            result.upserted,
            result.deleted,
            result.skipped,
            len(result.errors),
            result.duration_ms,
        )
        if result.upserted or result.deleted:
            notify(
                self.notifier,
                {"source": action, "upserted": result.upserted, "deleted": result.deleted},
            )
        return result

    def _apply_page(
        self, page: EstimatePage, classifier: RecordClassifier, result: SyncResult
    ) -> None:
        office = page.organization.office
        to_upsert = []
        to_delete = []
        for raw in page.estimates:
            disposition = classifier.classify(raw, office)
            if disposition.is_upsert:
                to_upsert.append(disposition.record)
            elif disposition.kind == "delete":
                to_delete.append(disposition.external_id)
            elif disposition.reason != WINDOW_SKIP:
                result.skipped += 1
                logger.debug("Skipped %s: %s", disposition.external_id, disposition.reason)

        result.upserted += self.writer.upsert_many(to_upsert)
        result.deleted += self.writer.delete_many(to_delete)
        logger.info(
            "%s p.%d: %d to upsert, %d to delete",
            office,
            page.number,
            len(to_upsert),
            len(to_delete),
        )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def run_sync(
    config: SyncConfig | None = None,
    trigger: Trigger = "manual",
    *,
    store: Store | None = None,
) -> SyncResult:
    """Run one sweep with configuration from the environment by default."""
    config = config or load_config()
    store = store or open_store(config)
    return SyncOrchestrator(config, store).run(trigger)


__all__ = ["SyncOrchestrator", "audit_action", "notify", "run_sync"]
