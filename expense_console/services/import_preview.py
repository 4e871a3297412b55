"""Local quick-look at an expense import file before it is handed to the backend.

Only the checks an operator can fix in the spreadsheet are done here. Vendor
and category existence, duplicates and persistence are the backend's job.
"""

from __future__ import annotations

import csv
import io
import logging
from datetime import date, datetime
from pathlib import PurePath
from typing import Any, Optional

import openpyxl
from openpyxl.utils import get_column_letter

from expense_console.core.errors import client_error
from expense_console.schemas.importing import ImportPreview, ImportRowError

logger = logging.getLogger(__name__)

TEMPLATE_COLUMNS = (
    "Parent ID",
    "Sub ID",
    "Vendor",
    "Description",
    "Type (In/Out)",
    "Amount (Before VAT)",
    "VAT Amount",
    "Amount (After VAT)",
    "Currency",
    "Transaction Date",
    "Category",
    "Payment Method",
    "Invoice Link",
)

TEMPLATE_SAMPLE_ROWS = (
    (1, 1.1, "ABC Company", "Office supplies", "Out", 100.0, 20.0, 120.0, "USD",
     "2023-12-01", "Office Supplies", "BANK_TRANSFER", ""),
    (1, 1.2, "XYZ Vendor", "Software license", "Out", 500.0, 100.0, 600.0, "USD",
     "2023-12-02", "Software", "CREDIT_CARD", "https://invoice.link"),
)

_TEMPLATE_WIDTHS = (10, 8, 15, 20, 12, 18, 12, 18, 10, 16, 15, 16, 20)

# header -> field name used in row errors
_FIELD_BY_HEADER = {
    "vendor": "vendor",
    "description": "description",
    "type (in/out)": "type",
    "amount (after vat)": "amountAfterVat",
    "currency": "currency",
    "transaction date": "transactionDate",
}

_DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y")

CSV_CONTENT_TYPE = "text/csv"
XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
SUPPORTED_EXTENSIONS = {".csv": CSV_CONTENT_TYPE, ".xlsx": XLSX_CONTENT_TYPE}


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value == int(value):
        return str(int(value))
    return str(value).strip()


def extension_of(filename: str) -> str:
    return PurePath(filename or "").suffix.lower()


def content_type_for(filename: str) -> str:
    extension = extension_of(filename)
    if extension not in SUPPORTED_EXTENSIONS:
        raise client_error(
            "Unsupported file type. Please upload a CSV or Excel (.xlsx) file.",
            details={"file": f"'{extension or filename}' is not supported"},
        )
    return SUPPORTED_EXTENSIONS[extension]


def _read_csv(content: bytes) -> list[list[str]]:
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise client_error("CSV files must be UTF-8 encoded") from exc
    return [[cell.strip() for cell in row] for row in csv.reader(io.StringIO(text, newline=""))]


def _read_xlsx(content: bytes) -> list[list[str]]:
    try:
        workbook = openpyxl.load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except Exception as exc:
        logger.warning("Unreadable workbook: %s", exc)
        raise client_error("The Excel file could not be read") from exc
    try:
        sheet = workbook.active
        return [[_cell_text(value) for value in row] for row in sheet.iter_rows(values_only=True)]
    finally:
        workbook.close()


def read_table(filename: str, content: bytes) -> tuple[list[str], list[dict[str, str]]]:
    """Return headers and one header -> text mapping per non-blank data row."""
    extension = extension_of(filename)
    content_type_for(filename)
    raw = _read_csv(content) if extension == ".csv" else _read_xlsx(content)

    rows = [row for row in raw if any(cell != "" for cell in row)]
    if not rows:
        return [], []
    headers = [cell or f"Column {index + 1}" for index, cell in enumerate(rows[0])]
    while headers and headers[-1].startswith("Column "):
        headers.pop()

    records = []
    for row in rows[1:]:
        padded = list(row) + [""] * (len(headers) - len(row))
        records.append(dict(zip(headers, padded)))
    return headers, records


def parse_date(value: str) -> Optional[date]:
    text = value.strip()
    if "T" in text:
        text = text.split("T", 1)[0]
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def _parse_amount(value: str) -> Optional[float]:
    try:
        return float(value.replace(",", ""))
    except ValueError:
        return None


def suggestion_for(field: str, value: Optional[str], message: str) -> Optional[str]:
    blank = not (value or "").strip()
    if field == "vendor" and blank:
        return 'Enter a valid vendor name (e.g., "ABC Company", "John Smith")'
    if field == "vendor" and "does not exist" in message:
        return "This vendor is not in the system. Create the vendor first or check the spelling."
    if field == "description" and blank:
        return 'Provide a clear description (e.g., "Office supplies", "Transportation")'
    if field == "type" and value not in ("In", "Out"):
        return 'Use "In" for income or "Out" for expenses'
    if field == "amountAfterVat" and "format" in message:
        return 'Use numeric format without currency symbols (e.g., "100.50", not "$100.50")'
    if field == "amountAfterVat" and blank:
        return 'Enter a valid amount (e.g., "100.00", "1500")'
    if field == "currency" and blank:
        return 'Specify currency like "USD", "VND", "EUR"'
    if field == "transactionDate" and "format" in message:
        return 'Use date format YYYY-MM-DD or MM/DD/YYYY (e.g., "2023-12-25")'
    if field == "transactionDate" and blank:
        return "Enter transaction date in format YYYY-MM-DD"
    return None


def _error(row: int, field: str, value: Optional[str], message: str) -> ImportRowError:
    return ImportRowError(
        row=row,
        field=field,
        value=value,
        message=message,
        suggestion=suggestion_for(field, value, message),
    )


def check_row(row_number: int, values: dict[str, str]) -> list[ImportRowError]:
    """``values`` is keyed by field name (vendor, description, ...)."""
    errors: list[ImportRowError] = []

    if "vendor" in values and not values["vendor"]:
        errors.append(_error(row_number, "vendor", values["vendor"], "Vendor is required"))
    if "description" in values and not values["description"]:
        errors.append(_error(row_number, "description", values["description"], "Description is required"))
    if "type" in values and values["type"] not in ("In", "Out"):
        errors.append(_error(row_number, "type", values["type"], "Type must be either 'In' or 'Out'"))

    if "amountAfterVat" in values:
        amount = values["amountAfterVat"]
        if not amount:
            errors.append(_error(row_number, "amountAfterVat", amount, "Amount (After VAT) is required"))
        elif _parse_amount(amount) is None:
            errors.append(_error(row_number, "amountAfterVat", amount, "Invalid amount format"))

    if "currency" in values and not values["currency"]:
        errors.append(_error(row_number, "currency", values["currency"], "Currency is required"))

    if "transactionDate" in values:
        raw_date = values["transactionDate"]
        if not raw_date:
            errors.append(_error(row_number, "transactionDate", raw_date, "Transaction date is required"))
        elif parse_date(raw_date) is None:
            errors.append(_error(row_number, "transactionDate", raw_date, "Invalid date format"))
    return errors


def build_preview(
    filename: str,
    content: bytes,
    *,
    sample_rows: int = 5,
    max_bytes: Optional[int] = None,
) -> ImportPreview:
    if not content:
        raise client_error("The selected file is empty")
    if max_bytes is not None and len(content) > max_bytes:
        raise client_error(
            f"File is too large. Maximum size is {max_bytes // (1024 * 1024)} MB.",
            details={"file": "File exceeds the maximum upload size"},
        )

    headers, records = read_table(filename, content)
    field_headers = {}
    for header in headers:
        field = _FIELD_BY_HEADER.get(header.strip().lower())
        if field:
            field_headers[field] = header

    errors: list[ImportRowError] = []
    for header_key, field in _FIELD_BY_HEADER.items():
        if field not in field_headers:
            column = next(name for name in TEMPLATE_COLUMNS if name.lower() == header_key)
            errors.append(
                ImportRowError(
                    row=1,
                    field=field,
                    value=None,
                    message=f"Missing required column '{column}'",
                    suggestion="Download the import template to see the expected columns.",
                )
            )

    for index, record in enumerate(records):
        values = {field: record.get(header, "") for field, header in field_headers.items()}
        # row 1 is the header row
        errors.extend(check_row(index + 2, values))

    logger.info(
        "Previewed import file=%s rows=%s errors=%s", filename, len(records), len(errors)
    )
    return ImportPreview(
        file_name=filename,
        headers=headers,
        total_rows=len(records),
        sample_data=records[: max(0, sample_rows)],
        errors=errors,
    )


def csv_template() -> bytes:
    buffer = io.StringIO(newline="")
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(TEMPLATE_COLUMNS)
    for row in TEMPLATE_SAMPLE_ROWS:
        # amounts keep two decimals, as a spreadsheet would show them
        writer.writerow([f"{cell:.2f}" if index in (5, 6, 7) else cell for index, cell in enumerate(row)])
    return buffer.getvalue().encode("utf-8")


def xlsx_template() -> bytes:
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.title = "Expense Template"
    sheet.append(list(TEMPLATE_COLUMNS))
    for row in TEMPLATE_SAMPLE_ROWS:
        sheet.append(list(row))
    for index, width in enumerate(_TEMPLATE_WIDTHS, start=1):
        sheet.column_dimensions[get_column_letter(index)].width = width
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()
