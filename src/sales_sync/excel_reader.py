"""Rep roster extraction from an Excel workbook.

This module reads the ``reps`` worksheet from a workbook using ``openpyxl``
and converts rows into :class:`Rep` objects, so a local store can be seeded
with the same reference data the billing platform's salespeople map onto.
"""

from __future__ import annotations

from pathlib import Path  # Filesystem path management
from typing import Any, List

from openpyxl import load_workbook  # Excel file loader

from sales_sync.model import Rep

OFFICES = {"QC", "MTL"}
FALSE_WORDS = {"0", "false", "no", "non", "n", "inactive", "inactif"}


def _as_bool(value: Any) -> bool:
    if value is None or value == "":
        return True  # Blank Active column means active
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() not in FALSE_WORDS


def extract_reps(workbook_path: Path) -> List[Rep]:
    """Return reps parsed from the ``reps`` worksheet.

    Expected headers: ``ID`` (optional), ``Name``, ``Office``, ``Active``.
    Rows without a name are skipped; a missing ID falls back to the trimmed
    name. Raises :class:`FileNotFoundError` when the workbook is absent and
    :class:`ValueError` when the worksheet is missing or names repeat.
    """

    workbook_path = Path(workbook_path)
    if not workbook_path.exists():
        raise FileNotFoundError(f"Workbook not found: {workbook_path}")

    # Read-only mode, cell values only
    workbook = load_workbook(filename=workbook_path, read_only=True, data_only=True)
    try:
        try:
            sheet = workbook["reps"]
        except KeyError as exc:
            raise ValueError("Worksheet 'reps' not found in workbook") from exc

        rows = sheet.iter_rows(values_only=True)
        headers_row = next(rows, None)
        if headers_row is None:  # Empty sheet
            return []

        headers = [str(h).strip() if h is not None else "" for h in headers_row]
        header_index = {header: idx for idx, header in enumerate(headers)}

        def _value(row, column_name: str):
            idx = header_index.get(column_name)
            if idx is None or idx >= len(row):
                return None
            return row[idx]

        reps: List[Rep] = []
        seen: set[str] = set()
        for row in rows:
            name = _value(row, "Name")
            name_str = str(name).strip() if name is not None else ""
            if not name_str:
                continue
            if name_str in seen:
                raise ValueError(f"Duplicate rep name in workbook: {name_str}")
            seen.add(name_str)

            raw_id = _value(row, "ID")
            if raw_id in (None, ""):
                rep_id = name_str
            else:
                try:
                    rep_id = str(int(raw_id))  # 7.0 -> "7"
                except (TypeError, ValueError):
                    rep_id = str(raw_id).strip()

            office = _value(row, "Office")
            office_str = str(office).strip().upper() if office is not None else ""
            reps.append(
                Rep(
                    id=rep_id,
                    name=name_str,
                    office=office_str if office_str in OFFICES else None,
                    active=_as_bool(_value(row, "Active")),
                )
            )
    finally:
        workbook.close()

    return reps


__all__ = ["extract_reps"]
