from datetime import date, datetime
from decimal import Decimal
from typing import Annotated

import pytest
from openpyxl import Workbook
from pydantic import BaseModel, ConfigDict, Field

from recordsheet import config
from recordsheet.xlsx_common import FieldType, XLSXField


# Record models used across the tests
class Person(BaseModel):
    name: Annotated[str, XLSXField("姓名")] = ""
    age: Annotated[int | None, XLSXField("年龄", field_type=FieldType.INT32)] = None
    height: Annotated[float | None, XLSXField("身高")] = None
    salary: Annotated[Decimal | None, XLSXField("薪资")] = None
    active: Annotated[bool | None, XLSXField("在职")] = None
    birthday: Annotated[date | None, XLSXField("生日")] = None
    updated_at: Annotated[datetime | None, XLSXField("更新时间")] = None
    note: str = ""


class Account(BaseModel):
    login: Annotated[str, XLSXField("Login")] = ""
    password: Annotated[str, XLSXField("Password", export_field=False)] = ""
    created_by: Annotated[str, XLSXField("Created by", import_field=False)] = ""
    remark: Annotated[str, XLSXField("Remark")] = ""


class Ticket(BaseModel):
    code: Annotated[str, XLSXField("Code")] = ""
    serial: Annotated[int, XLSXField("Serial"), Field(frozen=True)] = 0
    secret: Annotated[str, XLSXField("Secret"), Field(exclude=True)] = ""


class FrozenTicket(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: Annotated[str, XLSXField("Code")] = ""


class Product(BaseModel):
    sku: Annotated[str, XLSXField("SKU")] = ""
    price: Annotated[Decimal | None, XLSXField("Price")] = None

    def get_sku(self):
        return self.sku.upper()

    def set_price(self, value):
        self.price = value.quantize(Decimal("0.01"))


class Broken(BaseModel):
    label: Annotated[str, XLSXField("Label")] = ""

    def get_label(self):
        msg = "boom"
        raise RuntimeError(msg)


class Memo(BaseModel):
    code: Annotated[str, XLSXField("Code")] = ""
    remark: Annotated[str, XLSXField("Remark")] = "n/a"


class Untitled(BaseModel):
    code: Annotated[str, XLSXField()] = ""


class Required(BaseModel):
    code: Annotated[str, XLSXField("Code")]


PEOPLE = [
    Person(
        name="张三",
        age=30,
        height=1.75,
        salary=Decimal("8500.50"),
        active=True,
        birthday=date(1993, 6, 15),
        updated_at=datetime(2023, 6, 15, 10, 30, 0),
    ),
    Person(name="Bob", age=41, active=False),
    Person(name="=SUM(A1:A2)", height=0.1),
]


@pytest.fixture
def people():
    return [person.model_copy() for person in PEOPLE]


@pytest.fixture
def temp_file(tmp_path):
    return tmp_path / "test.xlsx"


@pytest.fixture
def make_workbook(tmp_path):
    """Write sheets given as {title: rows} to an xlsx file and return its path."""

    def _make(sheets, name="input.xlsx"):
        wb = Workbook()
        wb.remove(wb.active)
        for title, rows in sheets.items():
            ws = wb.create_sheet(title)
            for row in rows:
                ws.append(row)
        path = tmp_path / name
        wb.save(path)
        return path

    return _make


@pytest.fixture(autouse=True)
def default_config():
    """Make sure every test starts and ends with the default config."""
    config.load_config()
    yield
    config.load_config()
