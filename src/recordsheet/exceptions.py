"""Exceptions raised by recordsheet."""


class RecordSheetError(Exception):
    pass


class SheetFileNotFoundError(RecordSheetError, FileNotFoundError):
    """Raised when a spreadsheet path does not exist."""


class UnsupportedWorkbookError(RecordSheetError):
    """Raised when neither the xlsx nor the xls reader accepts the input."""


class RecordInstantiationError(RecordSheetError):
    """Raised when a record cannot be default-constructed for a row."""


class DateConversionError(RecordSheetError, ValueError):
    """Raised when a date string cannot be converted with a pattern."""
