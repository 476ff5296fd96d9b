"""
Table format implementation: one title row followed by one row per record.

This module contains:
- Table configuration (styles and column sizing)
- Table formatter rendering records and mapping rows back to records
- Workbook loading with xlsx/xls auto-detection
- Table processor for import/export operations
"""

import logging
import unicodedata
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Any, BinaryIO

import xlrd
from openpyxl import Workbook, load_workbook
from openpyxl.cell.read_only import EmptyCell
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet
from pydantic import BaseModel

from .exceptions import (
    RecordInstantiationError,
    SheetFileNotFoundError,
    UnsupportedWorkbookError,
)
from .xlsx_common import (
    Direction,
    FieldMapping,
    XLSXDeserializationError,
    XLSXFieldSelector,
    XLSXSerializationEngine,
    XLSXSerializationError,
)

logger = logging.getLogger(__name__)

MAX_SHEETNAME_LENGTH = 31
TITLE_ROW = 1
FIRST_DATA_ROW = 2

# Marks a cell that does not exist in the file, as opposed to a blank cell (None).
ABSENT = object()

# A sheet as (name, rows); a row is a tuple of raw cell values.
SheetRows = tuple[str, Iterable[tuple[Any, ...]]]


@dataclass
class XLSXTableConfig:
    """Configuration for the table layout."""

    sheet_name: str | None = None
    header_font_name: str = "黑体"
    data_font_name: str = "simsun"
    font_size: int = 14
    font_color: str = "000000"
    header_fill_color: str = "FFFF00"
    border_color: str = "000000"
    row_height: float = 25
    auto_size_columns: bool = False
    column_padding: int = 2
    max_column_width: int = 255


# Workbook loading
def read_source(source: str | Path | bytes | BinaryIO) -> bytes:
    """Return the content of a path, a byte string or a binary file object."""
    if isinstance(source, bytes | bytearray):
        return bytes(source)
    if isinstance(source, str | Path):
        path = Path(source)
        if not path.exists():
            msg = f"File not found: {path}"
            raise SheetFileNotFoundError(msg)
        return path.read_bytes()
    return source.read()


def _openpyxl_row(row) -> tuple[Any, ...]:
    # read-only rows are padded with EmptyCell where the file has no cell
    return tuple(ABSENT if isinstance(cell, EmptyCell) else cell.value for cell in row)


def _openpyxl_sheets(workbook: Workbook) -> Iterator[SheetRows]:
    # chartsheets are not part of workbook.worksheets
    try:
        for worksheet in workbook.worksheets:
            # the stored dimension can be wrong, it would cut off cells
            worksheet.reset_dimensions()
            rows = worksheet.iter_rows(min_row=FIRST_DATA_ROW)
            yield worksheet.title, (_openpyxl_row(row) for row in rows)
    finally:
        workbook.close()


def _xlrd_cell_value(cell, datemode: int) -> Any:
    if cell.ctype == xlrd.XL_CELL_EMPTY:
        return ABSENT
    if cell.ctype == xlrd.XL_CELL_BLANK:
        return None
    if cell.ctype == xlrd.XL_CELL_BOOLEAN:
        return bool(cell.value)
    if cell.ctype == xlrd.XL_CELL_DATE:
        return xlrd.xldate_as_datetime(cell.value, datemode)
    if cell.ctype == xlrd.XL_CELL_ERROR:
        return xlrd.error_text_from_code.get(cell.value, "#ERR")
    return cell.value


def _xlrd_sheets(book) -> Iterator[SheetRows]:
    for sheet in book.sheets():
        rows = (
            tuple(_xlrd_cell_value(cell, book.datemode) for cell in sheet.row(idx))
            for idx in range(FIRST_DATA_ROW - 1, sheet.nrows)
        )
        yield sheet.name, rows


def load_sheets(content: bytes) -> Iterator[SheetRows]:
    """Open a workbook trying the xlsx reader first and the xls reader second.

    Cells missing from the file are returned as ``ABSENT``. The rows of a
    sheet must be consumed before the next sheet is requested.
    """
    try:
        workbook = load_workbook(BytesIO(content), read_only=True, data_only=True)
    except Exception as xlsx_error:
        logger.debug("Not readable as xlsx (%s), trying xls.", xlsx_error)
        try:
            book = xlrd.open_workbook(file_contents=content)
        except Exception as exc:
            msg = "Input is neither an xlsx nor an xls workbook."
            raise UnsupportedWorkbookError(msg) from exc
        logger.debug("Reading legacy xls workbook.")
        return _xlrd_sheets(book)
    return _openpyxl_sheets(workbook)


# Table formatter
class XLSXTableFormatter:
    """Handles the tabular layout: title row, then one row per record."""

    def __init__(self, config: XLSXTableConfig):
        self.config = config
        self.serialization_engine = XLSXSerializationEngine()

    def format_export(
        self,
        worksheet: Worksheet,
        data: Sequence[BaseModel],
        fields: list[FieldMapping],
    ) -> None:
        """Write the title row and the data rows."""
        self._add_headers(worksheet, fields)
        self._write_data_rows(worksheet, data, fields)
        if self.config.auto_size_columns:
            self._auto_adjust_columns(worksheet, len(fields))

    def _border(self) -> Border:
        side = Side(style="thin", color=self.config.border_color)
        return Border(left=side, right=side, top=side, bottom=side)

    def _add_headers(self, worksheet: Worksheet, fields: list[FieldMapping]) -> None:
        config = self.config
        font = Font(
            name=config.header_font_name,
            size=config.font_size,
            bold=True,
            color=config.font_color,
        )
        fill = PatternFill(
            start_color=config.header_fill_color,
            end_color=config.header_fill_color,
            fill_type="solid",
        )
        alignment = Alignment(horizontal="center", vertical="center")
        border = self._border()

        for col_idx, mapping in enumerate(fields, start=1):
            cell = worksheet.cell(row=TITLE_ROW, column=col_idx, value=mapping.title)
            cell.font = font
            cell.fill = fill
            cell.alignment = alignment
            cell.border = border
        worksheet.row_dimensions[TITLE_ROW].height = config.row_height

    def _write_data_rows(
        self,
        worksheet: Worksheet,
        data: Sequence[BaseModel],
        fields: list[FieldMapping],
    ) -> None:
        config = self.config
        font = Font(
            name=config.data_font_name, size=config.font_size, color=config.font_color
        )
        alignment = Alignment(horizontal="center", vertical="center")
        border = self._border()

        for row_idx, item in enumerate(data, start=FIRST_DATA_ROW):
            for col_idx, mapping in enumerate(fields, start=1):
                value = None
                try:
                    value = mapping.accessor(item)
                    text = self.serialization_engine.serialize_value(value)
                    cell = worksheet.cell(row=row_idx, column=col_idx, value=text)
                except Exception as e:
                    raise XLSXSerializationError(mapping.name, value, e) from e
                if text.startswith("="):
                    # keep text literal, openpyxl would store it as a formula
                    cell.data_type = "s"
                cell.font = font
                cell.alignment = alignment
                cell.border = border
            worksheet.row_dimensions[row_idx].height = config.row_height
        logger.debug('Wrote %i rows to sheet "%s".', len(data), worksheet.title)

    @staticmethod
    def _text_width(text: str) -> int:
        # wide (CJK) characters take two columns
        return sum(
            2 if unicodedata.east_asian_width(char) in "WF" else 1 for char in text
        )

    def _auto_adjust_columns(self, worksheet: Worksheet, num_columns: int) -> None:
        """Widen columns to fit their content, up to max_column_width."""
        for col_idx in range(1, num_columns + 1):
            column_letter = get_column_letter(col_idx)
            max_length = 0
            for (value,) in worksheet.iter_rows(
                min_col=col_idx, max_col=col_idx, values_only=True
            ):
                if value is not None:
                    max_length = max(max_length, self._text_width(str(value)))

            dimension = worksheet.column_dimensions[column_letter]
            new_width = min(
                max_length + self.config.column_padding, self.config.max_column_width
            )
            if dimension.width is None or new_width > dimension.width:
                dimension.width = new_width

    def parse_import(
        self,
        sheets: Iterable[SheetRows],
        fields: list[FieldMapping],
        model_class: type[BaseModel],
    ) -> list[BaseModel]:
        """Map the data rows of all sheets to records."""
        records = []
        for sheet_name, rows in sheets:
            count = 0
            for row_number, row in enumerate(rows, start=FIRST_DATA_ROW):
                if self._is_blank_row(row):
                    continue
                records.append(
                    self._row_to_record(row, fields, model_class, sheet_name, row_number)
                )
                count += 1
            logger.debug('Read %i records from sheet "%s".', count, sheet_name)
        return records

    @staticmethod
    def _is_blank_row(row: tuple[Any, ...]) -> bool:
        """A row is blank if its first cell is absent or empty."""
        return not row or row[0] is ABSENT or row[0] is None

    def _row_to_record(
        self,
        row: tuple[Any, ...],
        fields: list[FieldMapping],
        model_class: type[BaseModel],
        sheet_name: str,
        row_number: int,
    ) -> BaseModel:
        location = f'Sheet "{sheet_name}", row {row_number}'
        try:
            record = model_class()
        except Exception as e:
            msg = f"{location}: cannot create {model_class.__name__}: {e}"
            raise RecordInstantiationError(msg) from e

        for col_idx, mapping in enumerate(fields):
            raw_value = row[col_idx] if col_idx < len(row) else ABSENT
            if raw_value is ABSENT:
                # a missing cell leaves the field untouched, a blank one is ""
                continue
            try:
                text = self.serialization_engine.cell_to_text(raw_value)
                value = self.serialization_engine.coerce(text, mapping.field_type)
                if value is not None:
                    mapping.accessor(record, value)
            except Exception as e:
                raise XLSXDeserializationError(
                    mapping.name, raw_value, e, location=location
                ) from e
        return record


# Table processor
class XLSXTableProcessor:
    """Processor for the table format."""

    def __init__(self, config: XLSXTableConfig, formatter: XLSXTableFormatter):
        self.config = config
        self.formatter = formatter
        self.field_selector = XLSXFieldSelector()

    def render(
        self,
        data: Sequence[BaseModel],
        model_class: type[BaseModel] | None = None,
        sheet_name: str | None = None,
    ) -> bytes:
        """Render records into xlsx bytes.

        The model class defaults to the class of the first record.
        """
        if model_class is None:
            if not data:
                msg = "No data provided for export and no model class given"
                raise ValueError(msg)
            model_class = data[0].__class__
        sheet_name = sheet_name or self.config.sheet_name or model_class.__name__

        fields = self.field_selector.select_fields(model_class, Direction.EXPORT)

        workbook = Workbook()
        worksheet = workbook.active
        worksheet.title = sheet_name[:MAX_SHEETNAME_LENGTH]
        self.formatter.format_export(worksheet, data, fields)

        buffer = BytesIO()
        workbook.save(buffer)
        return buffer.getvalue()

    def export(
        self,
        data: Sequence[BaseModel],
        target: str | Path | BinaryIO,
        model_class: type[BaseModel] | None = None,
        sheet_name: str | None = None,
    ) -> None:
        """Export records to a file path or a binary sink.

        The workbook is rendered completely before anything is written, so a
        failing export leaves the target untouched.
        """
        content = self.render(data, model_class, sheet_name)
        if isinstance(target, str | Path):
            Path(target).write_bytes(content)
        else:
            target.write(content)

    def import_data(
        self,
        source: str | Path | bytes | BinaryIO,
        model_class: type[BaseModel],
    ) -> list[BaseModel]:
        """Import records from all sheets of an xlsx or xls workbook."""
        content = read_source(source)
        fields = self.field_selector.select_fields(model_class, Direction.IMPORT)
        sheets = load_sheets(content)
        return self.formatter.parse_import(sheets, fields, model_class)
