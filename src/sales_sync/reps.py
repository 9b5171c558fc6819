"""Rep name to id lookup, loaded once per run."""

from __future__ import annotations

import logging

from sales_sync.errors import DirectoryLoadError
from sales_sync.model import Rep
from sales_sync.store import STORE_ERRORS, Store

logger = logging.getLogger(__name__)


class RepDirectory:
    """In-memory view of the reps table keyed by trimmed name.

    Matching is exact after trimming whitespace: no case folding and no fuzzy
    matching. A miss is a normal outcome and returns ``None``.
    """

    def __init__(self, store: Store) -> None:
        self.store = store
        self._by_name: dict[str, Rep] | None = None

    def load(self) -> "RepDirectory":
        try:
            reps = self.store.fetch_reps()
        except STORE_ERRORS as exc:
            raise DirectoryLoadError(f"Failed to fetch reps: {exc}") from exc
        self._by_name = {rep.name.strip(): rep for rep in reps}
        logger.info("Loaded %d reps", len(self._by_name))
        return self

    @property
    def loaded(self) -> bool:
        return self._by_name is not None

    def lookup(self, name: object) -> Rep | None:
        if self._by_name is None:
            raise RuntimeError("RepDirectory.load() must be called before lookup()")
        if not isinstance(name, str):
            return None
        return self._by_name.get(name.strip())

    def __len__(self) -> int:
        return len(self._by_name or {})


__all__ = ["RepDirectory"]
