from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from errors import NotFoundError, ValidationError
from models import DEFAULT_MONTHLY_LIMITS, Category
from schemas import ExpenseIn
from services import BudgetService, ExpenseService


def test_upsert_inserts_then_overwrites_single_row() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = BudgetService(session)
        service.upsert("Lazer", 400)
        budget = service.upsert(Category.leisure, "450.5")

        assert budget.monthly_limit == Decimal("450.50")
        budgets = service.list()
        assert len(budgets) == 1
        assert budgets[0].category == Category.leisure


def test_zero_limit_is_allowed() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        budget = BudgetService(session).upsert("Outros", 0)

        assert budget.monthly_limit == Decimal("0.00")


def test_upsert_rejects_negative_limit_and_unknown_category() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = BudgetService(session)
        with pytest.raises(ValidationError):
            service.upsert("Lazer", -1)
        with pytest.raises(ValidationError):
            service.upsert("Viagem", 100)

        assert service.list() == []


def test_list_is_ordered_by_category_name() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = BudgetService(session)
        for category in ("Transporte", "Alimentação", "Moradia", "Educação"):
            service.upsert(category, 100)

        names = [b.category.value for b in service.list()]

        assert names == ["Alimentação", "Educação", "Moradia", "Transporte"]


def test_delete_is_idempotent() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = BudgetService(session)
        service.upsert("Saúde", 300)

        service.delete("Saúde")
        service.delete("Saúde")

        assert service.list() == []
        with pytest.raises(NotFoundError):
            service.get("Saúde")


def test_delete_unknown_category_is_validation_error() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        with pytest.raises(ValidationError):
            BudgetService(session).delete("Viagem")


def test_seed_defaults_fills_only_missing_categories() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = BudgetService(session)
        service.upsert("Alimentação", 999)

        added = service.seed_defaults()

        assert added == len(DEFAULT_MONTHLY_LIMITS) - 1
        limits = service.limits()
        assert limits[Category.food] == Decimal("999.00")
        assert limits[Category.housing] == Decimal("2000.00")
        assert service.seed_defaults() == 0


def test_deleting_budget_leaves_expenses_untouched() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        ExpenseService(session).upsert(
            ExpenseIn(
                description="Gym",
                amount="99.90",
                category=Category.health,
                date=date(2024, 3, 1),
            )
        )
        BudgetService(session).upsert("Saúde", 300)

        BudgetService(session).delete("Saúde")

        items, total = ExpenseService(session).list()
        assert total == 1
        assert items[0].amount == Decimal("99.90")


def test_deleting_expense_leaves_budgets_untouched() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        budgets = BudgetService(session)
        budgets.upsert("Lazer", 400)
        budgets.upsert("Saúde", 300)
        before = [(b.category, b.monthly_limit, b.updated_at) for b in budgets.list()]
        expense = ExpenseService(session).upsert(
            ExpenseIn(
                description="Cinema",
                amount="45.00",
                category=Category.leisure,
                date=date(2024, 3, 9),
            )
        )

        ExpenseService(session).delete(expense.id)

        after = [(b.category, b.monthly_limit, b.updated_at) for b in budgets.list()]
        assert after == before
