from __future__ import annotations

import json
from typing import Any

import pytest

from sales_sync.config import Organization, SyncConfig
from sales_sync.model import Rep
from sales_sync.store import SqliteStore

SECRET = "s3cret"


class FakeResponse:
    """Minimal stand-in for ``requests.Response``."""

    def __init__(self, status_code: int = 200, payload: Any = None, text: str | None = None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else json.dumps(payload)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


class FakeSession:
    """Routes token posts and estimate listing gets to canned responses.

    ``pages`` maps ``(organization_id, page)`` to a FakeResponse; unknown
    pages answer with an empty listing.
    """

    def __init__(self, token_response: FakeResponse | None = None, pages=None):
        self.token_response = token_response or FakeResponse(200, {"access_token": "tok"})
        self.pages = pages or {}
        self.token_calls = 0
        self.get_calls: list[tuple[str, int]] = []

    def post(self, url, params=None, timeout=None):
        self.token_calls += 1
        return self.token_response

    def get(self, url, params=None, headers=None, timeout=None):
        key = (params["organization_id"], params["page"])
        self.get_calls.append(key)
        return self.pages.get(key, FakeResponse(200, {"estimates": []}))


def listing(estimates: list[dict[str, Any]], has_more: bool = False) -> FakeResponse:
    return FakeResponse(200, {"estimates": estimates, "page_context": {"has_more_page": has_more}})


def estimate(
    estimate_id: str,
    status: str = "accepted",
    date: str = "2026-02-16",
    rep: str = "Marie Tremblay",
    department: str = "PROMOTIONNEL",
    total: float = 1500.0,
) -> dict[str, Any]:
    return {
        "estimate_id": estimate_id,
        "estimate_number": f"EST-{estimate_id}",
        "status": status,
        "date": date,
        "customer_name": "Client Inc.",
        "total": total,
        "salesperson_name": rep,
        "cf_d_partement": department,
    }


@pytest.fixture
def config() -> SyncConfig:
    return SyncConfig(
        organizations=(Organization("111", "QC"), Organization("222", "MTL")),
        client_id="cid",
        client_secret="csecret",
        refresh_token="refresh",
        webhook_secret=SECRET,
        retention_years=(2025, 2026),
    )


@pytest.fixture
def store(tmp_path) -> SqliteStore:
    db = SqliteStore(str(tmp_path / "sales.db"))
    db.save_reps(
        [
            Rep(id="r1", name="Marie Tremblay", office="QC"),
            Rep(id="r2", name="Jean Roy", office="MTL"),
        ]
    )
    return db
