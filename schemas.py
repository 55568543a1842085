import datetime as dt
from decimal import Decimal
from typing import Annotated, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from amounts import parse_amount, parse_date
from models import IncomeType

Money = Annotated[
    Decimal, PlainSerializer(float, return_type=float, when_used="json")
]


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value


def _reject_explicit_null(model: BaseModel, fields: tuple[str, ...]) -> None:
    for name in fields:
        if name in model.model_fields_set and getattr(model, name) is None:
            raise ValueError(f"{to_camel(name)} cannot be null")


class CategoryIn(ApiModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: Optional[str] = Field(default=None, max_length=9)
    icon: Optional[str] = Field(default=None, max_length=32)

    @field_validator("color")
    @classmethod
    def _blank_color_is_default(cls, value: Optional[str]) -> Optional[str]:
        return value or None


class CategoryUpdate(ApiModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    color: Optional[str] = Field(default=None, min_length=1, max_length=9)
    icon: Optional[str] = Field(default=None, max_length=32)

    @model_validator(mode="after")
    def _required_columns_not_null(self) -> "CategoryUpdate":
        _reject_explicit_null(self, ("name", "color"))
        return self


class ExpenseIn(ApiModel):
    amount: Decimal
    date: dt.date
    category_id: int
    note: Optional[str] = Field(default=None, max_length=500)

    @field_validator("note")
    @classmethod
    def _blank_note_is_none(cls, value: Optional[str]) -> Optional[str]:
        return _blank_to_none(value)

    @field_validator("amount", mode="before")
    @classmethod
    def _parse_amount(cls, value: object) -> Decimal:
        return parse_amount(value)

    @field_validator("date", mode="before")
    @classmethod
    def _parse_date(cls, value: object) -> dt.date:
        return parse_date(value)


class ExpenseUpdate(ApiModel):
    amount: Optional[Decimal] = None
    date: Optional[dt.date] = None
    category_id: Optional[int] = None
    note: Optional[str] = Field(default=None, max_length=500)

    @field_validator("note")
    @classmethod
    def _blank_note_is_none(cls, value: Optional[str]) -> Optional[str]:
        return _blank_to_none(value)

    @field_validator("amount", mode="before")
    @classmethod
    def _parse_amount(cls, value: object) -> Optional[Decimal]:
        return None if value is None else parse_amount(value)

    @field_validator("date", mode="before")
    @classmethod
    def _parse_date(cls, value: object) -> Optional[dt.date]:
        return None if value is None else parse_date(value)

    @model_validator(mode="after")
    def _required_columns_not_null(self) -> "ExpenseUpdate":
        _reject_explicit_null(self, ("amount", "date", "category_id"))
        return self


class IncomeIn(ApiModel):
    amount: Decimal
    type: IncomeType
    date: dt.date
    note: Optional[str] = Field(default=None, max_length=500)

    @field_validator("note")
    @classmethod
    def _blank_note_is_none(cls, value: Optional[str]) -> Optional[str]:
        return _blank_to_none(value)

    @field_validator("amount", mode="before")
    @classmethod
    def _parse_amount(cls, value: object) -> Decimal:
        return parse_amount(value)

    @field_validator("date", mode="before")
    @classmethod
    def _parse_date(cls, value: object) -> dt.date:
        return parse_date(value)


class IncomeUpdate(ApiModel):
    amount: Optional[Decimal] = None
    type: Optional[IncomeType] = None
    date: Optional[dt.date] = None
    note: Optional[str] = Field(default=None, max_length=500)

    @field_validator("note")
    @classmethod
    def _blank_note_is_none(cls, value: Optional[str]) -> Optional[str]:
        return _blank_to_none(value)

    @field_validator("amount", mode="before")
    @classmethod
    def _parse_amount(cls, value: object) -> Optional[Decimal]:
        return None if value is None else parse_amount(value)

    @field_validator("date", mode="before")
    @classmethod
    def _parse_date(cls, value: object) -> Optional[dt.date]:
        return None if value is None else parse_date(value)

    @model_validator(mode="after")
    def _required_columns_not_null(self) -> "IncomeUpdate":
        _reject_explicit_null(self, ("amount", "type", "date"))
        return self


class SettingsIn(ApiModel):
    billing_cycle_start: int


class RegisterIn(ApiModel):
    email: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)
    name: Optional[str] = Field(default=None, max_length=100)


class LoginIn(ApiModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class CategoryOut(ApiModel):
    id: int
    name: str
    color: str
    icon: Optional[str]


class CategoryWithCountOut(CategoryOut):
    expense_count: int


class ExpenseOut(ApiModel):
    id: int
    amount: Money
    date: dt.date
    note: Optional[str]
    category_id: int
    category: CategoryOut
    created_at: dt.datetime
    updated_at: dt.datetime


class IncomeOut(ApiModel):
    id: int
    amount: Money
    type: IncomeType
    date: dt.date
    note: Optional[str]
    created_at: dt.datetime
    updated_at: dt.datetime


class IncomeListOut(ApiModel):
    incomes: list[IncomeOut]
    total: Money


class SettingsOut(ApiModel):
    billing_cycle_start: int


class BillingPeriodOut(ApiModel):
    billing_cycle_start: int
    start: dt.date
    end: dt.date


class CategoryTotalOut(ApiModel):
    category: CategoryOut
    total: Money
    count: int


class DailyAmountOut(ApiModel):
    day: int
    amount: Money


class MonthlySummaryOut(ApiModel):
    current_total: Money
    previous_total: Money
    percentage_change: float
    category_breakdown: list[CategoryTotalOut]
    daily_data: list[DailyAmountOut]
    recent_transactions: list[ExpenseOut]
    total_income: Money
    balance: Money
    recent_incomes: list[IncomeOut]
    month: int
    year: int


class MessageOut(ApiModel):
    message: str


class RegisterOut(ApiModel):
    message: str
    user_id: int


class LoginOut(ApiModel):
    token: str
    user_id: int
