from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import Table, delete, extract, func, select, update
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from config import get_settings
from errors import NotFoundError, ValidationError
from models import DEFAULT_MONTHLY_LIMITS, Budget, Category, Expense, utcnow
from periods import month_label, resolve_month, trailing_months
from schemas import (
    BudgetIn,
    CategorySummary,
    ExpenseFilters,
    ExpenseIn,
    ExpensePatch,
    MonthlyTotal,
    Summary,
    parse_model,
    to_money,
)


logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
TENTH = Decimal("0.1")


def parse_category(value: object) -> Category:
    try:
        return Category(value)
    except ValueError as exc:
        raise ValidationError.for_field(
            "category", f"Unknown category: {value!r}"
        ) from exc


def upsert_statement(
    session: Session,
    table: Table,
    values: dict[str, object],
    *,
    key: str,
    update_columns: list[str],
):
    """Single-statement insert-or-update on ``key`` for the bound dialect."""
    dialect = session.get_bind().dialect.name
    if dialect in ("mysql", "mariadb"):
        stmt = mysql_insert(table).values(values)
        return stmt.on_duplicate_key_update(
            {name: stmt.inserted[name] for name in update_columns}
        )
    if dialect in ("sqlite", "postgresql"):
        insert = sqlite_insert if dialect == "sqlite" else pg_insert
        stmt = insert(table).values(values)
        return stmt.on_conflict_do_update(
            index_elements=[key],
            set_={name: stmt.excluded[name] for name in update_columns},
        )
    raise NotImplementedError(f"Upsert is not supported on dialect {dialect}")


def _money(value: object) -> Decimal:
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return to_money(value)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class ExpenseService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list(
        self, filters: Optional[ExpenseFilters | Mapping[str, object]] = None
    ) -> tuple[list[Expense], int]:
        filters = parse_model(ExpenseFilters, filters or {})
        conditions = []
        if filters.category:
            conditions.append(Expense.category == filters.category)
        if filters.start_date:
            conditions.append(Expense.date >= filters.start_date)
        if filters.end_date:
            conditions.append(Expense.date <= filters.end_date)
        if filters.search:
            like = f"%{_escape_like(filters.search.lower())}%"
            conditions.append(func.lower(Expense.description).like(like, escape="\\"))

        total = self.session.execute(
            select(func.count()).select_from(Expense).where(*conditions)
        ).scalar_one()
        stmt = (
            select(Expense)
            .where(*conditions)
            .order_by(
                Expense.date.desc(), Expense.created_at.desc(), Expense.id.desc()
            )
            .offset(filters.offset)
            .limit(filters.limit)
        )
        return list(self.session.scalars(stmt).all()), int(total or 0)

    def get(self, expense_id: str) -> Expense:
        expense = self.session.get(Expense, expense_id, populate_existing=True)
        if not expense:
            raise NotFoundError("Expense not found")
        return expense

    def upsert(self, data: ExpenseIn | Mapping[str, object]) -> Expense:
        data = parse_model(ExpenseIn, data)
        expense_id = data.id or str(uuid.uuid4())
        now = utcnow()
        stmt = upsert_statement(
            self.session,
            Expense.__table__,
            {
                "id": expense_id,
                "description": data.description,
                "amount": data.amount,
                "category": data.category,
                "date": data.date,
                "isRecurring": data.is_recurring,
                "created_at": now,
                "updated_at": now,
            },
            key="id",
            update_columns=[
                "description",
                "amount",
                "category",
                "date",
                "isRecurring",
                "updated_at",
            ],
        )
        self.session.execute(stmt)
        self.session.commit()
        logger.info(
            f"expense_upserted: id={expense_id} category={data.category.value} "
            f"amount={data.amount}"
        )
        return self.get(expense_id)

    def update(
        self, expense_id: str, data: ExpensePatch | Mapping[str, object]
    ) -> Expense:
        changes = parse_model(ExpensePatch, data).changes()
        if not changes:
            raise ValidationError("No fields to update")
        values = {getattr(Expense, field): value for field, value in changes.items()}
        values[Expense.updated_at] = utcnow()
        result = self.session.execute(
            update(Expense)
            .where(Expense.id == expense_id)
            .values(values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self.session.rollback()
            raise NotFoundError("Expense not found")
        self.session.commit()
        logger.info(f"expense_updated: id={expense_id} fields={sorted(changes)}")
        return self.get(expense_id)

    def delete(self, expense_id: str) -> None:
        result = self.session.execute(
            delete(Expense)
            .where(Expense.id == expense_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self.session.rollback()
            raise NotFoundError("Expense not found")
        self.session.commit()
        logger.info(f"expense_deleted: id={expense_id}")


class BudgetService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list(self) -> list[Budget]:
        budgets = self.session.scalars(select(Budget)).all()
        return sorted(budgets, key=lambda b: b.category.value)

    def limits(self) -> dict[Category, Decimal]:
        rows = self.session.execute(select(Budget.category, Budget.monthly_limit))
        return {row.category: _money(row.monthly_limit) for row in rows}

    def get(self, category: Category | str) -> Budget:
        category = parse_category(category)
        budget = self.session.scalar(
            select(Budget)
            .where(Budget.category == category)
            .execution_options(populate_existing=True)
        )
        if not budget:
            raise NotFoundError(f"No budget set for {category.value}")
        return budget

    def upsert(self, category: Category | str, limit: Decimal | float | str) -> Budget:
        data = parse_model(BudgetIn, {"category": category, "limit": limit})
        now = utcnow()
        stmt = upsert_statement(
            self.session,
            Budget.__table__,
            {
                "category": data.category,
                "monthly_limit": data.limit,
                "created_at": now,
                "updated_at": now,
            },
            key="category",
            update_columns=["monthly_limit", "updated_at"],
        )
        self.session.execute(stmt)
        self.session.commit()
        logger.info(
            f"budget_upserted: category={data.category.value} limit={data.limit}"
        )
        return self.get(data.category)

    def delete(self, category: Category | str) -> None:
        category = parse_category(category)
        result = self.session.execute(
            delete(Budget)
            .where(Budget.category == category)
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        logger.info(
            f"budget_deleted: category={category.value} removed={result.rowcount}"
        )

    def seed_defaults(self) -> int:
        existing = set(self.session.scalars(select(Budget.category)).all())
        added = 0
        for category, limit in DEFAULT_MONTHLY_LIMITS.items():
            if category in existing:
                continue
            self.session.add(Budget(category=category, monthly_limit=limit))
            added += 1
        self.session.commit()
        logger.info(f"budget_seed: inserted={added}")
        return added


def _budget_pct(total: Decimal, limit: Optional[Decimal]) -> Optional[Decimal]:
    if not limit:
        return None
    return (total / limit * 100).quantize(TENTH, rounding=ROUND_HALF_UP)


class ReportService:
    def __init__(self, session: Session, timezone: Optional[str] = None) -> None:
        self.session = session
        self.timezone = timezone or get_settings().timezone

    def today(self) -> date:
        return datetime.now(ZoneInfo(self.timezone)).date()

    def summary(self, month: Optional[str] = None) -> Summary:
        try:
            period = resolve_month(month)
        except ValueError:
            # a year-month that names no calendar month matches no expense
            logger.info(f"summary_empty: month={month}")
            return Summary(grand_total=ZERO, tx_count=0, by_category=[])

        stmt = select(
            Expense.category,
            func.sum(Expense.amount).label("total"),
            func.count(Expense.id).label("expense_count"),
        ).group_by(Expense.category)
        if period:
            stmt = stmt.where(Expense.date.between(period.start, period.end))

        limits = BudgetService(self.session).limits()
        rows: list[CategorySummary] = []
        for row in self.session.execute(stmt):
            total = _money(row.total)
            limit = limits.get(row.category)
            rows.append(
                CategorySummary(
                    category=row.category,
                    total=total,
                    count=int(row.expense_count),
                    budget_limit=limit if limit is not None else ZERO,
                    budget_pct=_budget_pct(total, limit),
                )
            )
        rows.sort(key=lambda r: (-r.total, r.category.value))
        return Summary(
            grand_total=sum((r.total for r in rows), ZERO),
            tx_count=sum(r.count for r in rows),
            by_category=rows,
        )

    def monthly_trend(self, today: Optional[date] = None) -> list[MonthlyTotal]:
        window = trailing_months(today or self.today(), 12)
        stmt = (
            select(
                extract("year", Expense.date).label("year"),
                extract("month", Expense.date).label("month"),
                func.sum(Expense.amount).label("total"),
                func.count(Expense.id).label("expense_count"),
            )
            .where(Expense.date.between(window.start, window.end))
            .group_by("year", "month")
        )
        rows = sorted(
            self.session.execute(stmt), key=lambda r: (int(r.year), int(r.month))
        )
        return [
            MonthlyTotal(
                month=month_label(date(int(row.year), int(row.month), 1)),
                total=_money(row.total),
                count=int(row.expense_count),
            )
            for row in rows
        ]
