"""Machine feed import.

The batching plant exports one CSV row per mixing event. Exports differ by
controller firmware: the delimiter may be ';', tab or ',' and decimal commas
show up when the delimiter is not a comma.

Expected header (order free):
    BatchNumber, DateTime, Client, Formula, Cement, Sand, Gravel, Water,
    Additives, TotalVolume, Operator
"""

import csv
import io
import uuid
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from core.errors import BatchImportError
from core.observability.logging import get_logger, with_correlation
from models.production import LinkStatus, ProductionBatch


logger = get_logger(__name__)

REQUIRED_COLUMNS = [
    "BatchNumber",
    "DateTime",
    "Client",
    "Formula",
    "Cement",
    "Sand",
    "Gravel",
    "Water",
    "Additives",
    "TotalVolume",
    "Operator",
]

# CSV column -> ProductionBatch field
NUMERIC_COLUMNS = {
    "Cement": "cement_kg",
    "Sand": "sand_kg",
    "Gravel": "gravel_kg",
    "Water": "water_l",
    "Additives": "additives_l",
    "TotalVolume": "total_volume_m3",
}

DATETIME_FORMATS = ("%d/%m/%Y %H:%M:%S", "%d/%m/%Y %H:%M")


class RowError(BaseModel):
    row: int = Field(..., description="1-based data row number (header excluded)")
    field: Optional[str] = None
    message: str


class ImportReport(BaseModel):
    """Summary of one feed import."""
    source_file: Optional[str] = None
    total_rows: int = 0
    imported: int = 0
    failed: int = 0
    auto_linked: int = 0
    pending_link: int = 0
    inserted_ids: List[str] = Field(default_factory=list)
    errors: List[RowError] = Field(default_factory=list)


def detect_delimiter(header_line: str) -> str:
    if ";" in header_line:
        return ";"
    if "\t" in header_line:
        return "\t"
    return ","


def parse_decimal(raw: str, delimiter: str) -> Decimal:
    text = raw.strip().replace(" ", "")
    if delimiter != ",":
        text = text.replace(",", ".")
    value = Decimal(text)
    if not value.is_finite():
        raise InvalidOperation(text)
    return value


def parse_batch_datetime(raw: str) -> datetime:
    text = raw.strip()
    try:
        return datetime.fromisoformat(text.replace(" ", "T", 1))
    except ValueError:
        pass
    for fmt in DATETIME_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    raise ValueError(f"unrecognised date/time: {raw!r}")


def parse_row(row: Dict[str, str], row_number: int, delimiter: str) -> Tuple[Optional[dict], List[RowError]]:
    """Validate one CSV row.

    Returns:
        (ProductionBatch field dict or None, list of errors)
    """
    errors: List[RowError] = []
    values = {k: (row.get(k) or "").strip() for k in REQUIRED_COLUMNS}

    for column in REQUIRED_COLUMNS:
        if not values[column]:
            errors.append(RowError(row=row_number, field=column, message="required"))

    data: dict = {
        "batch_number": values["BatchNumber"],
        "client_name": values["Client"] or None,
        "formula": values["Formula"] or None,
        "operator_name": values["Operator"] or None,
    }

    if values["DateTime"]:
        try:
            data["batch_datetime"] = parse_batch_datetime(values["DateTime"])
        except ValueError as e:
            errors.append(RowError(row=row_number, field="DateTime", message=str(e)))

    for column, field_name in NUMERIC_COLUMNS.items():
        raw = values[column]
        if not raw:
            continue
        try:
            value = parse_decimal(raw, delimiter)
        except InvalidOperation:
            errors.append(RowError(row=row_number, field=column, message=f"not a number: {raw!r}"))
            continue
        if value < 0:
            errors.append(RowError(row=row_number, field=column, message="must not be negative"))
            continue
        data[field_name] = value

    if "total_volume_m3" in data and data["total_volume_m3"] <= 0:
        errors.append(RowError(row=row_number, field="TotalVolume", message="must be positive"))

    return (None if errors else data), errors


def import_batches_csv(
    text: str,
    batch_store,
    reconciler=None,
    source_file: Optional[str] = None,
) -> ImportReport:
    """Import a machine feed export.

    Args:
        text: CSV content
        batch_store: Where batches are inserted (BatchStore)
        reconciler: Optional BatchReconciler; when given, every inserted batch
            is reconciled right away
        source_file: Original filename, kept on each batch

    Returns:
        ImportReport. Invalid rows are reported, not raised.

    Raises:
        BatchImportError: No header, missing required columns or no data rows
    """
    lines = text.lstrip("\ufeff").splitlines()
    if not lines or not lines[0].strip():
        raise BatchImportError("empty file")

    delimiter = detect_delimiter(lines[0])
    reader = csv.DictReader(io.StringIO("\n".join(lines)), delimiter=delimiter)
    header = [h.strip() for h in (reader.fieldnames or [])]
    reader.fieldnames = header

    missing = [c for c in REQUIRED_COLUMNS if c not in header]
    if missing:
        raise BatchImportError(f"missing columns: {', '.join(missing)}")

    rows = [r for r in reader if any((v or "").strip() for v in r.values() if isinstance(v, str))]
    if not rows:
        raise BatchImportError("no data rows")

    report = ImportReport(source_file=source_file, total_rows=len(rows))
    seen_numbers = set()

    with with_correlation(stage="import"):
        for index, row in enumerate(rows, start=1):
            data, errors = parse_row(row, index, delimiter)

            if data is not None:
                key = (data["batch_number"], data["batch_datetime"])
                if key in seen_numbers:
                    errors = [RowError(row=index, field="BatchNumber", message="duplicate batch in file")]
                    data = None
                else:
                    seen_numbers.add(key)

            if data is None:
                report.failed += 1
                report.errors.extend(errors)
                continue

            batch = batch_store.insert(ProductionBatch(
                batch_id=f"PB-{uuid.uuid4().hex[:12]}",
                source_file=source_file,
                **data,
            ))
            report.imported += 1
            report.inserted_ids.append(batch.batch_id)

            if reconciler is not None:
                result = reconciler.reconcile_batch(batch.batch_id)
                if result.status == LinkStatus.AUTO_LINKED:
                    report.auto_linked += 1
                elif result.status == LinkStatus.PENDING:
                    report.pending_link += 1

        logger.info(
            f"Imported {report.imported}/{report.total_rows} batches",
            extra_fields={
                "source_file": source_file,
                "failed": report.failed,
                "auto_linked": report.auto_linked,
                "pending_link": report.pending_link,
            },
        )

    return report
