import datetime as dt
from collections.abc import Mapping
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated, Optional, TypeVar

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    ValidationError as PydanticValidationError,
    field_validator,
    model_validator,
)

from errors import ValidationError
from models import Category


CENT = Decimal("0.01")
MAX_AMOUNT = Decimal("99999999.99")

# Decimals travel as JSON numbers, not strings.
JsonDecimal = Annotated[
    Decimal, PlainSerializer(float, return_type=float, when_used="json")
]


def to_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _positive_amount(value: Optional[Decimal]) -> Decimal:
    if value is None:
        raise ValueError("may not be null")
    value = to_money(value)
    if value <= 0:
        raise ValueError("must be greater than 0")
    if value > MAX_AMOUNT:
        raise ValueError(f"must not exceed {MAX_AMOUNT}")
    return value


def _non_negative_amount(value: Decimal) -> Decimal:
    value = to_money(value)
    if value < 0:
        raise ValueError("must be greater than or equal to 0")
    if value > MAX_AMOUNT:
        raise ValueError(f"must not exceed {MAX_AMOUNT}")
    return value


class ExpenseIn(BaseModel):
    """Full expense payload; an existing ``id`` means overwrite."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    id: Optional[str] = Field(default=None, min_length=1, max_length=36)
    description: str = Field(..., min_length=1, max_length=255)
    amount: JsonDecimal
    category: Category
    date: dt.date
    is_recurring: bool = Field(default=False, alias="isRecurring")

    @field_validator("amount")
    @classmethod
    def _check_amount(cls, value: Decimal) -> Decimal:
        return _positive_amount(value)


class ExpensePatch(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    description: Optional[str] = Field(default=None, min_length=1, max_length=255)
    amount: Optional[JsonDecimal] = None
    category: Optional[Category] = None
    date: Optional[dt.date] = None
    is_recurring: Optional[bool] = Field(default=None, alias="isRecurring")

    @field_validator("amount")
    @classmethod
    def _check_amount(cls, value: Optional[Decimal]) -> Decimal:
        return _positive_amount(value)

    @field_validator("description", "category", "date", "is_recurring")
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError("may not be null")
        return value

    def changes(self) -> dict[str, object]:
        return self.model_dump(exclude_unset=True)


class ExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    description: str
    amount: JsonDecimal
    category: Category
    date: dt.date
    is_recurring: bool = Field(
        validation_alias=AliasChoices("is_recurring", "isRecurring"),
        serialization_alias="isRecurring",
    )
    created_at: datetime
    updated_at: datetime


class ExpenseFilters(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    category: Optional[Category] = None
    start_date: Optional[dt.date] = Field(default=None, alias="startDate")
    end_date: Optional[dt.date] = Field(default=None, alias="endDate")
    search: Optional[str] = Field(default=None, max_length=255)
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=50, ge=1, le=200)

    @model_validator(mode="after")
    def _check_range(self) -> "ExpenseFilters":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("startDate must not be after endDate")
        return self

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class ExpensePage(BaseModel):
    data: list[ExpenseOut]
    total: int
    page: int
    limit: int


class BudgetIn(BaseModel):
    category: Category
    limit: JsonDecimal

    @field_validator("limit")
    @classmethod
    def _check_limit(cls, value: Decimal) -> Decimal:
        return _non_negative_amount(value)


class BudgetOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    category: Category
    monthly_limit: JsonDecimal
    created_at: datetime
    updated_at: datetime


class CategorySummary(BaseModel):
    category: Category
    total: JsonDecimal
    count: int
    budget_limit: JsonDecimal
    budget_pct: Optional[JsonDecimal] = None


class Summary(BaseModel):
    grand_total: JsonDecimal
    tx_count: int
    by_category: list[CategorySummary]


class MonthlyTotal(BaseModel):
    month: str
    total: JsonDecimal
    count: int


M = TypeVar("M", bound=BaseModel)

_LOCATION_PREFIXES = {"body", "query", "path"}


def field_errors(errors: list[dict]) -> list[dict[str, str]]:
    out: list[dict[str, str]] = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ())]
        if loc and loc[0] in _LOCATION_PREFIXES:
            loc = loc[1:]
        out.append({"field": ".".join(loc) or "__root__", "message": err["msg"]})
    return out


def parse_model(model: type[M], data: "M | Mapping[str, object]") -> M:
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(
            f"Invalid {model.__name__} payload", field_errors(exc.errors())
        ) from exc
