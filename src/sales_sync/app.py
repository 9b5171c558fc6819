"""Flask HTTP surface: webhook receiver and sync trigger."""

from __future__ import annotations

import logging

from flask import Flask, Response, jsonify, request

from sales_sync.config import SyncConfig, load_config
from sales_sync.model import Trigger
from sales_sync.runner import Notifier, SyncOrchestrator
from sales_sync.store import STORE_ERRORS, Store, open_store
from sales_sync.webhook import WebhookReceiver

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-sync-source, content-type",
}
ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def trigger_from_header(value: str | None) -> Trigger:
    """``cron`` selects a scheduled sweep; anything else counts as manual."""
    return "scheduled" if (value or "").strip().lower() == "cron" else "manual"


def create_app(
    config: SyncConfig | None = None,
    store: Store | None = None,
    *,
    orchestrator: SyncOrchestrator | None = None,
    notifier: Notifier | None = None,
) -> Flask:
    config = config or load_config()
    store = store or open_store(config)
    orchestrator = orchestrator or SyncOrchestrator(config, store, notifier=notifier)
    receiver = WebhookReceiver(config, store, notifier=notifier)

    app = Flask(__name__)

    @app.route("/webhook", methods=ALL_METHODS, provide_automatic_options=False)
    def webhook() -> tuple[Response, int]:
        result = receiver.handle(request.method, request.headers, request.get_data())
        return jsonify(result.body), result.status

    @app.route("/sync", methods=["POST", "OPTIONS"])
    def sync() -> tuple[Response, int]:
        if request.method == "OPTIONS":
            return _with_cors(Response(status=204)), 204
        trigger = trigger_from_header(request.headers.get("x-sync-source"))
        try:
            result = orchestrator.run(trigger)
        except Exception as exc:  # run() converts its own faults; this is the last guard
            logger.exception("Sync trigger failed")
            return _with_cors(jsonify({"error": str(exc)})), 500
        status = 200 if result.ok else 500
        return _with_cors(jsonify(result.to_payload())), status

    @app.get("/sync/status")
    def sync_status() -> tuple[Response, int]:
        try:
            last = store.last_sync_at()
        except STORE_ERRORS as exc:
            logger.exception("Could not read last sync time")
            return _with_cors(jsonify({"error": str(exc)})), 500
        return _with_cors(jsonify({"last_sync_at": last})), 200

    return app


def _with_cors(response: Response) -> Response:
    for name, value in CORS_HEADERS.items():
        response.headers[name] = value
    return response


__all__ = ["create_app", "trigger_from_header"]
