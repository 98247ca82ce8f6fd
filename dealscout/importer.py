from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path

import openpyxl

from dealscout.types import CONFIDENCE_LEVELS, SIGNAL_FUTURE_TOLERANCE, SIGNAL_TYPES, Company, Signal
from dealscout.utils import is_future, parse_timestamp

log = logging.getLogger(__name__)

COMPANIES_SHEET = "Companies"
SIGNALS_SHEET = "Signals"


def _s(value: object) -> str:
    """Safely coerce cell value to stripped string."""
    if value is None:
        return ""
    return str(value).strip()


def _i(value: object) -> int | None:
    """Safely coerce cell value to int, None if missing."""
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (ValueError, TypeError):
        return None


def _f(value: object) -> float | None:
    """Safely coerce cell value to float, None if missing."""
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (ValueError, TypeError):
        return None


def _b(value: object) -> bool:
    """Safely coerce cell value to bool."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


def _list(value: object, sep: str = ",") -> tuple[str, ...]:
    return tuple(part.strip() for part in _s(value).split(sep) if part.strip())


def _rows(sheet) -> list[dict[str, object]]:
    """Read a sheet as dicts keyed by the lower-cased header row."""
    rows = sheet.iter_rows(values_only=True)
    header = next(rows, None)
    if header is None:
        return []
    keys = [_s(h).lower().replace(" ", "_") for h in header]
    return [
        {k: row[i] if i < len(row) else None for i, k in enumerate(keys) if k}
        for row in rows
        if any(cell is not None and _s(cell) for cell in row)
    ]


@dataclass
class ImportResult:
    companies: list[Company] = field(default_factory=list)
    signals_imported: int = 0
    skipped_rows: int = 0


def _parse_signal(row: dict[str, object], row_no: int) -> Signal | None:
    try:
        timestamp = parse_timestamp(row.get("timestamp"))
    except ValueError:
        log.warning("Skipping signal row %d: bad timestamp %r", row_no, row.get("timestamp"))
        return None
    if is_future(timestamp, SIGNAL_FUTURE_TOLERANCE):
        log.warning("Skipping signal row %d: timestamp %s is in the future", row_no, timestamp.isoformat())
        return None
    sig_type = _s(row.get("type")).lower()
    confidence = _s(row.get("confidence")).lower() or "medium"
    return Signal(
        type=sig_type if sig_type in SIGNAL_TYPES else "other",
        title=_s(row.get("title")),
        timestamp=timestamp,
        confidence=confidence if confidence in CONFIDENCE_LEVELS else "low",
        is_new=_b(row.get("is_new")),
        id=_s(row.get("id")),
        description=_s(row.get("description")),
        source=_s(row.get("source")),
    )


def _parse_company(row: dict[str, object], signals: tuple[Signal, ...]) -> Company:
    funding_date = None
    if row.get("last_funding_date"):
        try:
            funding_date = parse_timestamp(row["last_funding_date"])
        except ValueError:
            log.warning("Ignoring bad funding date %r for %s", row["last_funding_date"], row.get("name"))
    return Company(
        id=_s(row.get("id")),
        name=_s(row.get("name")),
        sector=_s(row.get("sector")) or "Other",
        stage=_s(row.get("stage")),
        geography=_s(row.get("geography")),
        domain=_s(row.get("domain")),
        tagline=_s(row.get("tagline")),
        description=_s(row.get("description")),
        founded_year=_i(row.get("founded_year")),
        headcount=_s(row.get("headcount")) or None,
        last_funding_amount=_f(row.get("last_funding_amount")),
        last_funding_date=funding_date,
        total_raised=_f(row.get("total_raised")),
        founder_names=_list(row.get("founders"), ";") or _list(row.get("founder_names"), ";"),
        investor_names=_list(row.get("investors"), ";"),
        tags=_list(row.get("tags")),
        signals=signals,
    )


def import_xlsx(path: str | Path) -> ImportResult:
    """Read companies (and their signals) from an XLSX workbook.

    The ``Companies`` sheet is required; the ``Signals`` sheet is optional and
    joined on ``company_id``. Companies without a name are skipped; a missing
    id falls back to the row number.
    """
    wb = openpyxl.load_workbook(path, read_only=True, data_only=True)
    try:
        if COMPANIES_SHEET not in wb.sheetnames:
            raise ValueError(f"Workbook has no '{COMPANIES_SHEET}' sheet")
        company_rows = _rows(wb[COMPANIES_SHEET])
        signal_rows = _rows(wb[SIGNALS_SHEET]) if SIGNALS_SHEET in wb.sheetnames else []
    finally:
        wb.close()

    result = ImportResult()
    signals_by_company: dict[str, list[Signal]] = defaultdict(list)
    for row_no, row in enumerate(signal_rows, start=2):
        company_id = _s(row.get("company_id"))
        signal = _parse_signal(row, row_no) if company_id else None
        if signal is None:
            result.skipped_rows += 1
            continue
        signals_by_company[company_id].append(signal)

    for row_no, row in enumerate(company_rows, start=2):
        if not _s(row.get("name")):
            log.warning("Skipping company row %d: no name", row_no)
            result.skipped_rows += 1
            continue
        if not _s(row.get("id")):
            row = {**row, "id": f"row-{row_no}"}
        signals = tuple(signals_by_company.get(_s(row["id"]), ()))
        result.companies.append(_parse_company(row, signals))
        result.signals_imported += len(signals)

    log.info(
        "Imported %d companies (%d signals, %d rows skipped) from %s",
        len(result.companies), result.signals_imported, result.skipped_rows, path,
    )
    return result
