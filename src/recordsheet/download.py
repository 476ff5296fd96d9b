"""
HTTP download responses for exported spreadsheets.

Use from a FastAPI/Starlette endpoint::

    @app.get("/people.xlsx")
    def download_people():
        return xlsx_download_response(load_people(), Person, "人员名单")
"""

import logging
from collections.abc import Sequence
from urllib.parse import quote_plus

from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from .xlsx_api import render_workbook
from .xlsx_table import XLSXTableConfig

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/binary;charset=UTF-8"
FAILURE_CODE = "-1"
FAILURE_MESSAGE = "操作失败"


def encode_download_filename(filename: str) -> str:
    """Percent-encode a file name as UTF-8 with spaces written as '+'.

    Only letters, digits and ".-*_" stay literal, so "~" is encoded too.
    """
    return quote_plus(filename, safe="*", encoding="utf-8").replace("~", "%7E")


def failure_response(detail: str) -> JSONResponse:
    return JSONResponse(
        {"code": FAILURE_CODE, "data": detail, "message": FAILURE_MESSAGE}
    )


def xlsx_download_response(
    data: Sequence[BaseModel],
    model_class: type[BaseModel],
    filename: str,
    config: XLSXTableConfig | None = None,
) -> Response:
    """Build a download response with the records rendered as xlsx.

    The ".xlsx" extension is appended to filename. If rendering fails the
    error is logged and a JSON failure payload is returned instead; the
    exception is not raised to the caller.
    """
    try:
        content = render_workbook(data, model_class, config)
    except Exception as e:
        logger.exception('Export of "%s" failed: %s', filename, e)
        return failure_response(str(e))

    disposition = f"attachment;filename={encode_download_filename(filename)}.xlsx"
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": disposition},
    )
