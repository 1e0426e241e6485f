import datetime as dt
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class Category(str, Enum):
    food = "Alimentação"
    transport = "Transporte"
    housing = "Moradia"
    utilities = "Contas Fixas"
    leisure = "Lazer"
    health = "Saúde"
    education = "Educação"
    other = "Outros"


CATEGORIES: tuple[str, ...] = tuple(member.value for member in Category)

CATEGORY_ENUM = SAEnum(
    Category,
    name="expensecategory",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
    validate_strings=True,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )


class Expense(Base, TimestampMixin):
    __tablename__ = "expenses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    category: Mapped[Category] = mapped_column(CATEGORY_ENUM, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    is_recurring: Mapped[bool] = mapped_column(
        "isRecurring", Boolean, default=False, nullable=False
    )

    __table_args__ = (
        Index("ix_expenses_category", "category"),
        Index("ix_expenses_date", "date"),
        CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
    )


class Budget(Base, TimestampMixin):
    __tablename__ = "budgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    category: Mapped[Category] = mapped_column(CATEGORY_ENUM, nullable=False)
    monthly_limit: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    __table_args__ = (
        UniqueConstraint("category", name="uq_budgets_category"),
        CheckConstraint("monthly_limit >= 0", name="ck_budgets_limit_non_negative"),
    )


DEFAULT_MONTHLY_LIMITS: dict[Category, Decimal] = {
    Category.food: Decimal("1500.00"),
    Category.transport: Decimal("500.00"),
    Category.housing: Decimal("2000.00"),
    Category.utilities: Decimal("800.00"),
    Category.leisure: Decimal("400.00"),
    Category.health: Decimal("300.00"),
    Category.education: Decimal("600.00"),
    Category.other: Decimal("200.00"),
}
