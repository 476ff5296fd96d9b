"""Config module to share the spreadsheet layout settings across recordsheet."""

import logging
import sys
from pathlib import Path
from typing import Annotated

from pydantic import BaseModel, Field, StringConstraints, field_validator

from recordsheet.xlsx_table import MAX_SHEETNAME_LENGTH, XLSXTableConfig

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

logger = logging.getLogger(__name__)

HexColor = Annotated[
    str, StringConstraints(pattern=r"^[0-9A-Fa-f]{6}$", to_upper=True)
]


class XLSXSettings(BaseModel):
    sheet_name: str | None = None
    header_font_name: str = "黑体"
    data_font_name: str = "simsun"
    font_size: Annotated[int, Field(ge=1, le=409)] = 14
    font_color: HexColor = "000000"
    header_fill_color: HexColor = "FFFF00"
    border_color: HexColor = "000000"
    row_height: Annotated[float, Field(gt=0, le=409)] = 25
    auto_size_columns: bool = False
    column_padding: Annotated[int, Field(ge=0)] = 2
    max_column_width: Annotated[int, Field(ge=1, le=255)] = 255

    @field_validator("sheet_name")
    @classmethod
    def check_sheet_name(cls, value):
        if value is not None and not 0 < len(value) <= MAX_SHEETNAME_LENGTH:
            msg = f"sheet_name must have 1 to {MAX_SHEETNAME_LENGTH} characters."
            raise ValueError(msg)
        return value

    def to_table_config(self) -> XLSXTableConfig:
        return XLSXTableConfig(**self.model_dump())


class RecordSheetConfig(BaseModel):
    xlsx: XLSXSettings = XLSXSettings()
    default_config: bool = False


# This parameter will be updated/set by load_config.
CONFIG = RecordSheetConfig(default_config=True)


def load_config(
    config_file: Path | None = None, config: RecordSheetConfig | None = None
):
    """Replace the global CONFIG from a toml file or a config object.

    Without arguments, or with a file that does not exist, the defaults are
    restored.
    """
    global CONFIG  # noqa: PLW0603

    if config_file is not None and not config_file.exists():
        logger.warning('Configuration file "%s" not found.', config_file)
    if (config_file is None or not config_file.exists()) and config is None:
        CONFIG = RecordSheetConfig(default_config=True)
        logger.debug("Initializing default config.")
    elif config_file and config is None:
        with config_file.open(mode="rb") as fp:
            conf = tomllib.load(fp)
        CONFIG = RecordSheetConfig(**conf)
        logger.debug("Config loaded from: %s", config_file)
    else:
        CONFIG = RecordSheetConfig.model_validate_json(config.model_dump_json())
        logger.debug("Refreshing global state of config.")
