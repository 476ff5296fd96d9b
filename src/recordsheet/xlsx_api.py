"""
Public API and factory for creating table processors.

This module provides the main public API for XLSX processing:
- Factory for creating processors
- Public API functions for export/import
"""

from collections.abc import Sequence
from pathlib import Path
from typing import BinaryIO

from pydantic import BaseModel

from recordsheet import config as app_config

from .xlsx_table import XLSXTableConfig, XLSXTableFormatter, XLSXTableProcessor


class XLSXProcessorFactory:
    """Factory to create processors."""

    @staticmethod
    def create_table_processor(
        config: XLSXTableConfig | None = None,
    ) -> XLSXTableProcessor:
        """Create processor for the table format.

        Without a config the globally loaded settings are used.
        """
        config = config or app_config.CONFIG.xlsx.to_table_config()
        formatter = XLSXTableFormatter(config)
        return XLSXTableProcessor(config, formatter)


def export_to_xlsx(
    data: Sequence[BaseModel],
    target: Path | str | BinaryIO,
    model_class: type[BaseModel] | None = None,
    config: XLSXTableConfig | None = None,
    sheet_name: str | None = None,
) -> None:
    """Export records to an xlsx file or binary sink.

    Args:
        data: Records to export
        target: Path of the Excel file or a writable binary file object
        model_class: Record type; defaults to the type of the first record
        config: Optional configuration object
        sheet_name: Optional sheet name
    """
    processor = XLSXProcessorFactory.create_table_processor(config)
    processor.export(data, target, model_class, sheet_name)


def render_workbook(
    data: Sequence[BaseModel],
    model_class: type[BaseModel] | None = None,
    config: XLSXTableConfig | None = None,
    sheet_name: str | None = None,
) -> bytes:
    """Render records to the bytes of an xlsx file."""
    processor = XLSXProcessorFactory.create_table_processor(config)
    return processor.render(data, model_class, sheet_name)


def import_from_xlsx(
    source: Path | str | bytes | BinaryIO,
    model_class: type[BaseModel],
    config: XLSXTableConfig | None = None,
) -> list[BaseModel]:
    """Import records from an xlsx or xls workbook.

    Args:
        source: Path to the file, its content, or a readable binary file object
        model_class: Pydantic model class to import into
        config: Optional configuration object

    Returns:
        List of model instances, the rows of all sheets in order
    """
    processor = XLSXProcessorFactory.create_table_processor(config)
    return processor.import_data(source, model_class)
