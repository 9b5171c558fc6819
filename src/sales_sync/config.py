"""Runtime configuration, read once from the environment at startup."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import date
from types import MappingProxyType
from typing import Mapping

from dotenv import load_dotenv

from sales_sync.model import Office

# Label of the billing platform's "Département" custom field -> canonical code
DEFAULT_DEPARTMENT_MAP: Mapping[str, str] = MappingProxyType(
    {
        "MÉDIA MULTI-ANNONCEURS": "MULTI-ANNONCEURS",
        "MULTI-ANNONCEURS": "MULTI-ANNONCEURS",
        "PROMOTIONNEL": "PROMOTIONNEL",
        "DIST. PUBLICITAIRE SOLO": "DIST. PUBLICITAIRE SOLO",
        "AGENCE PUB": "NUMERIQUE",
        "NUMÉRIQUE": "NUMERIQUE",
        "APPLICATION": "APPLICATION",
        "SERVICES IA": "SERVICES IA",
    }
)

DEFAULT_ACCOUNTS_URL = "https://accounts.zoho.com"
DEFAULT_API_URL = "https://www.zohoapis.com/books/v3"
DEFAULT_PAGE_SIZE = 200
DEFAULT_DB_PATH = "sales.db"


@dataclass(frozen=True, slots=True)
class Organization:
    """Billing-platform tenant queried for one office."""

    id: str
    office: Office


def default_retention_years(today: date | None = None) -> tuple[int, ...]:
    """Current and prior calendar year."""
    year = (today or date.today()).year
    return (year - 1, year)


@dataclass(frozen=True)
class SyncConfig:
    organizations: tuple[Organization, ...]
    department_map: Mapping[str, str] = field(default_factory=lambda: DEFAULT_DEPARTMENT_MAP)
    client_id: str = ""
    client_secret: str = ""
    refresh_token: str = ""
    webhook_secret: str = ""
    accounts_url: str = DEFAULT_ACCOUNTS_URL
    api_url: str = DEFAULT_API_URL
    page_size: int = DEFAULT_PAGE_SIZE
    retention_years: tuple[int, ...] | None = None  # None: current and prior year, rolling
    db_path: str = DEFAULT_DB_PATH
    supabase_url: str | None = None
    supabase_key: str | None = None
    request_timeout: float = 30.0

    def __post_init__(self) -> None:
        if self.retention_years is not None and not self.retention_years:
            raise ValueError("retention_years must name at least one year")
        if self.page_size <= 0:
            raise ValueError("page_size must be positive")
        # Freeze a caller-supplied dict so the table cannot drift mid-run
        if not isinstance(self.department_map, MappingProxyType):
            object.__setattr__(
                self, "department_map", MappingProxyType(dict(self.department_map))
            )

    def window(self, today: date | None = None) -> tuple[int, ...]:
        """Fiscal years eligible for ingestion, resolved at call time."""
        if self.retention_years is not None:
            return self.retention_years
        return default_retention_years(today)

    @property
    def retention_floor(self) -> int:
        return min(self.window())

    def office_for(self, organization_id: str | None) -> Office | None:
        for org in self.organizations:
            if org.id == organization_id:
                return org.office
        return None

    def missing_credentials(self) -> list[str]:
        names = {
            "ZOHO_CLIENT_ID": self.client_id,
            "ZOHO_CLIENT_SECRET": self.client_secret,
            "ZOHO_REFRESH_TOKEN": self.refresh_token,
        }
        return [name for name, value in names.items() if not value]


def _parse_years(raw: str | None) -> tuple[int, ...] | None:
    if not raw:
        return None
    try:
        return tuple(int(part) for part in raw.split(",") if part.strip()) or None
    except ValueError as exc:
        raise RuntimeError(f"SYNC_RETENTION_YEARS is not a year list: {raw!r}") from exc


def load_config(env: Mapping[str, str] | None = None) -> SyncConfig:
    """Build the configuration from ``env`` (defaults to ``os.environ`` + .env)."""

    if env is None:
        load_dotenv()
        env = os.environ

    organizations = (
        Organization(id=env.get("ZOHO_ORG_ID_QC", "48244978"), office="QC"),
        Organization(id=env.get("ZOHO_ORG_ID_MTL", "815683274"), office="MTL"),
    )

    try:
        page_size = int(env.get("SYNC_PAGE_SIZE", DEFAULT_PAGE_SIZE))
    except ValueError as exc:
        raise RuntimeError("SYNC_PAGE_SIZE must be an integer") from exc

    return SyncConfig(
        organizations=organizations,
        client_id=env.get("ZOHO_CLIENT_ID", ""),
        client_secret=env.get("ZOHO_CLIENT_SECRET", ""),
        refresh_token=env.get("ZOHO_REFRESH_TOKEN", ""),
        webhook_secret=env.get("ZOHO_WEBHOOK_SECRET", ""),
        accounts_url=env.get("ZOHO_ACCOUNTS_URL", DEFAULT_ACCOUNTS_URL),
        api_url=env.get("ZOHO_API_URL", DEFAULT_API_URL),
        page_size=page_size,
        retention_years=_parse_years(env.get("SYNC_RETENTION_YEARS")),
        db_path=env.get("SALES_DB_PATH", DEFAULT_DB_PATH),
        supabase_url=env.get("SUPABASE_URL") or None,
        supabase_key=env.get("SUPABASE_SERVICE_ROLE_KEY") or None,
    )


__all__ = [
    "DEFAULT_DEPARTMENT_MAP",
    "Organization",
    "SyncConfig",
    "default_retention_years",
    "load_config",
]
