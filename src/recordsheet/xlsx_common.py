"""
Common XLSX functionality shared by the read and the write path.

This module contains the shared infrastructure including:
- The per-field mapping declaration (``XLSXField``)
- Field selection and accessor resolution for pydantic models
- The serialization engine converting cell values to/from field values
- Exception classes
"""

import logging
import re
import struct
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from enum import Enum
from types import UnionType
from typing import Annotated, Any, Union, get_args, get_origin

from pydantic import BaseModel

from .date_utils import format_date, string_to_date

logger = logging.getLogger(__name__)

TIMESTAMP_PATTERN = "yyyyMMddHHmmss"
DAY_PATTERN = "yyyyMMdd"
# Raw lengths of "yyyy-MM-dd HH:mm:ss" and "yyyyMMddHHmmss"
TIMESTAMP_LENGTHS = (19, 14)
NUMBER_SIGNIFICANT_DIGITS = 15

_INTEGER_LITERAL = re.compile(r"[+-]?[0-9]+")
_DECIMAL_LITERAL = re.compile(r"[+-]?([0-9]+(\.[0-9]*)?|\.[0-9]+)([eE][+-]?[0-9]+)?")


# Exception classes
class XLSXSerializationError(ValueError):
    """Raised when a field value cannot be read from a record for export."""

    def __init__(self, field_name: str, value: Any, original_error: Exception):
        self.field_name = field_name
        self.value = value
        self.original_error = original_error
        super().__init__(
            f"Error serializing field '{field_name}' with value '{value}': {original_error}"
        )


class XLSXDeserializationError(ValueError):
    """Raised when a cell value cannot be converted to the field type."""

    def __init__(
        self,
        field_name: str,
        value: Any,
        original_error: Exception,
        location: str = "",
    ):
        self.field_name = field_name
        self.value = value
        self.original_error = original_error
        self.location = location
        prefix = f"{location}: " if location else ""
        super().__init__(
            f"{prefix}Error deserializing field '{field_name}' with value '{value}': {original_error}"
        )


# Field declaration
@dataclass(frozen=True)
class XLSXField:
    """Spreadsheet mapping declaration for a pydantic field.

    Attach it with ``Annotated``::

        class Person(BaseModel):
            name: Annotated[str, XLSXField("Name")] = ""
            age: Annotated[int | None, XLSXField("Age", import_field=False)] = None

    ``order`` is reserved; columns always follow the declaration order.
    ``field_type`` overrides the type inferred from the annotation.
    """

    title: str = ""
    import_field: bool = True
    export_field: bool = True
    order: int = 0
    field_type: "FieldType | None" = None


class Direction(Enum):
    IMPORT = "import"
    EXPORT = "export"


def _parse_integer(bits: int) -> Callable[[str], int]:
    limit = 1 << (bits - 1)

    def parse(text: str) -> int:
        if not _INTEGER_LITERAL.fullmatch(text):
            msg = f"Invalid integer literal: '{text}'"
            raise ValueError(msg)
        value = int(text)
        if not -limit <= value < limit:
            msg = f"{text} is out of range for a {bits}-bit integer"
            raise ValueError(msg)
        return value

    return parse


def _parse_float32(text: str) -> float:
    try:
        return struct.unpack("<f", struct.pack("<f", float(text)))[0]
    except OverflowError as exc:
        msg = f"{text} is out of range for a 32-bit float"
        raise ValueError(msg) from exc


def _parse_decimal(text: str) -> Decimal:
    # Decimal() alone would also take "NaN", "Infinity", "1_000" and padding
    msg = f"Invalid decimal literal: '{text}'"
    if not _DECIMAL_LITERAL.fullmatch(text):
        raise ValueError(msg)
    try:
        return Decimal(text)
    except InvalidOperation as exc:
        raise ValueError(msg) from exc


def _parse_boolean(text: str) -> bool:
    return text.lower() == "true"


def _parse_date(text: str) -> date:
    pattern = TIMESTAMP_PATTERN if len(text) in TIMESTAMP_LENGTHS else DAY_PATTERN
    return string_to_date(text, pattern).date()


def _parse_timestamp(text: str) -> datetime:
    return string_to_date(format_date(text, TIMESTAMP_PATTERN), TIMESTAMP_PATTERN)


class FieldType(Enum):
    """Field types supported by the coercion of cell text."""

    STRING = "string"
    INT32 = "int32"
    INT64 = "int64"
    FLOAT32 = "float32"
    FLOAT64 = "float64"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    DATE = "date"
    TIMESTAMP = "timestamp"

    @classmethod
    def from_annotation(cls, annotation: Any) -> "FieldType | None":
        """Infer the field type from a (possibly optional) annotation."""
        origin = get_origin(annotation)
        if origin is Union or origin is UnionType:
            args = [arg for arg in get_args(annotation) if arg is not type(None)]
            if len(args) != 1:
                return None
            annotation = args[0]
        return _TYPES_BY_ANNOTATION.get(annotation)

    def parse(self, text: str) -> Any:
        return _PARSERS[self](text)


_TYPES_BY_ANNOTATION = {
    str: FieldType.STRING,
    bool: FieldType.BOOLEAN,
    int: FieldType.INT64,
    float: FieldType.FLOAT64,
    Decimal: FieldType.DECIMAL,
    datetime: FieldType.TIMESTAMP,
    date: FieldType.DATE,
}

_PARSERS: dict[FieldType, Callable[[str], Any]] = {
    FieldType.STRING: str,
    FieldType.INT32: _parse_integer(32),
    FieldType.INT64: _parse_integer(64),
    FieldType.FLOAT32: _parse_float32,
    FieldType.FLOAT64: float,
    FieldType.DECIMAL: _parse_decimal,
    FieldType.BOOLEAN: _parse_boolean,
    FieldType.DATE: _parse_date,
    FieldType.TIMESTAMP: _parse_timestamp,
}


@dataclass
class FieldMapping:
    """An eligible field together with its resolved accessor.

    The accessor is a getter ``accessor(record)`` on the export path and a
    setter ``accessor(record, value)`` on the import path.
    """

    name: str
    title: str
    import_field: bool
    export_field: bool
    field_type: FieldType | None
    accessor: Callable


def _attribute_setter(field_name: str) -> Callable[[Any, Any], None]:
    def setter(record, value):
        setattr(record, field_name, value)

    return setter


class XLSXFieldSelector:
    """Selects the fields of a pydantic model taking part in import or export."""

    @staticmethod
    def select_fields(
        model: type[BaseModel], direction: Direction
    ) -> list[FieldMapping]:
        """Return the eligible fields of model in declaration order.

        Fields without an ``XLSXField`` declaration, fields switched off for
        the direction and fields without an accessor are left out. A missing
        accessor is logged as a warning.
        """
        if not (isinstance(model, type) and issubclass(model, BaseModel)):
            msg = f"Expected Pydantic BaseModel, got {model!r}"
            raise TypeError(msg)

        mappings = []
        for field_name, field_info in model.model_fields.items():
            xlsx_field = XLSXFieldSelector.extract_xlsx_field(field_info)
            if xlsx_field is None:
                continue
            if direction is Direction.IMPORT and not xlsx_field.import_field:
                continue
            if direction is Direction.EXPORT and not xlsx_field.export_field:
                continue

            accessor = XLSXFieldSelector.resolve_accessor(
                model, field_name, field_info, direction
            )
            if accessor is None:
                if direction is Direction.IMPORT:
                    logger.warning(
                        'Field "%s" of %s has no setter and cannot be imported.',
                        field_name,
                        model.__name__,
                    )
                else:
                    logger.warning(
                        'Field "%s" of %s has no getter and cannot be exported.',
                        field_name,
                        model.__name__,
                    )
                continue

            mappings.append(
                FieldMapping(
                    name=field_name,
                    title=xlsx_field.title,
                    import_field=xlsx_field.import_field,
                    export_field=xlsx_field.export_field,
                    field_type=xlsx_field.field_type
                    or FieldType.from_annotation(field_info.annotation),
                    accessor=accessor,
                )
            )
        return mappings

    @staticmethod
    def extract_xlsx_field(field_info: Any) -> XLSXField | None:
        """Extract the XLSXField declaration from field info."""
        # Pydantic v2 moves Annotated extras into field_info.metadata
        for metadata_item in getattr(field_info, "metadata", None) or []:
            if isinstance(metadata_item, XLSXField):
                return metadata_item

        annotation = getattr(field_info, "annotation", None)
        if get_origin(annotation) is Annotated:
            for metadata_item in get_args(annotation)[1:]:
                if isinstance(metadata_item, XLSXField):
                    return metadata_item
        return None

    @staticmethod
    def resolve_accessor(
        model: type[BaseModel],
        field_name: str,
        field_info: Any,
        direction: Direction,
    ) -> Callable | None:
        """Find the getter (export) or setter (import) for a field.

        A ``get_<name>`` / ``set_<name>`` method on the model takes
        precedence. Otherwise plain attribute access is used, unless the
        field is excluded from serialization (no getter) or frozen (no
        setter).
        """
        prefix = "get" if direction is Direction.EXPORT else "set"
        method = getattr(model, f"{prefix}_{field_name}", None)
        if callable(method):
            return method

        if direction is Direction.EXPORT:
            if field_info.exclude:
                return None
            return lambda record: getattr(record, field_name)

        if field_info.frozen or model.model_config.get("frozen"):
            return None
        return _attribute_setter(field_name)


# Serialization engine
class XLSXSerializationEngine:
    """Centralized conversion between cell values and field values."""

    def serialize_value(self, value: Any) -> str:
        """Text written to a data cell for a field value."""
        if value is None:
            return ""
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    def cell_to_text(self, value: Any) -> str:
        """Render a raw cell value as text.

        Numbers are written in plain decimal notation without float noise,
        booleans as ``true``/``false``.
        """
        if value is None:
            return ""
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, int):
            return str(value)
        if isinstance(value, float):
            return self._number_to_text(value)
        if isinstance(value, datetime):
            return value.strftime("%Y-%m-%d %H:%M:%S")
        if isinstance(value, date | time):
            return value.isoformat()
        return str(value)

    @staticmethod
    def _number_to_text(number: float) -> str:
        if number == 0:
            return "0"
        # 15 significant digits as Excel displays them, written without exponent
        text = format(Decimal(f"{number:.{NUMBER_SIGNIFICANT_DIGITS}g}"), "f")
        if "." in text:
            text = text.rstrip("0").rstrip(".")
        return text

    def coerce(self, raw_text: str, field_type: FieldType | None) -> Any:
        """Convert cell text to a value of field_type.

        Returns None ("no value") for empty text, except for strings where
        the empty string is a value, and for unsupported field types.
        """
        if field_type is None:
            return None
        if raw_text == "":
            return "" if field_type is FieldType.STRING else None
        return field_type.parse(raw_text)
