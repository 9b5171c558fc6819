"""Department label normalisation."""

from __future__ import annotations

from typing import Any, Mapping

from sales_sync.config import DEFAULT_DEPARTMENT_MAP


class DepartmentNormalizer:
    """Map free-text department labels to canonical department codes.

    Lookup is exact after trimming surrounding whitespace. A label absent from
    the table yields ``None``; callers decide whether that drops the record or
    rejects the request.
    """

    def __init__(self, mapping: Mapping[str, str] = DEFAULT_DEPARTMENT_MAP) -> None:
        self._mapping = mapping

    def normalize(self, label: Any) -> str | None:
        if label is None:
            return None
        return self._mapping.get(str(label).strip())

    def __contains__(self, label: object) -> bool:
        return self.normalize(label) is not None


__all__ = ["DepartmentNormalizer"]
