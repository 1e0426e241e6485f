from datetime import date
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import Category
from schemas import ExpenseIn
from services import BudgetService, ExpenseService, ReportService


def _add(session, description, amount, category, on) -> None:
    ExpenseService(session).upsert(
        ExpenseIn(description=description, amount=amount, category=category, date=on)
    )


def test_summary_for_month_with_budget() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        _add(session, "Market", "120.50", "Alimentação", date(2024, 3, 5))
        BudgetService(session).upsert("Alimentação", "1500.00")

        summary = ReportService(session, timezone="UTC").summary("2024-03")

        assert summary.grand_total == Decimal("120.50")
        assert summary.tx_count == 1
        assert len(summary.by_category) == 1
        row = summary.by_category[0]
        assert row.category == Category.food
        assert row.total == Decimal("120.50")
        assert row.count == 1
        assert row.budget_limit == Decimal("1500.00")
        assert row.budget_pct == Decimal("8.0")


def test_summary_orders_by_total_and_handles_missing_limits() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        _add(session, "Rent", "1800", "Moradia", date(2024, 3, 1))
        _add(session, "Cinema", "40", "Lazer", date(2024, 3, 9))
        _add(session, "Concert", "80", "Lazer", date(2024, 3, 20))
        _add(session, "Bus", "5", "Transporte", date(2024, 3, 2))
        BudgetService(session).upsert("Moradia", "2000")
        BudgetService(session).upsert("Transporte", "0")

        summary = ReportService(session, timezone="UTC").summary("2024-03")

        assert [r.category for r in summary.by_category] == [
            Category.housing,
            Category.leisure,
            Category.transport,
        ]
        housing, leisure, transport = summary.by_category
        assert housing.budget_pct == Decimal("90.0")
        assert leisure.count == 2
        assert leisure.total == Decimal("120.00")
        assert leisure.budget_limit == Decimal("0.00")
        assert leisure.budget_pct is None
        assert transport.budget_pct is None
        assert summary.grand_total == Decimal("1925.00")
        assert summary.tx_count == 4


def test_summary_month_bounds_and_fallbacks() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        _add(session, "Feb end", "10", "Outros", date(2024, 2, 29))
        _add(session, "Mar start", "20", "Outros", date(2024, 3, 1))
        _add(session, "Mar end", "30", "Outros", date(2024, 3, 31))
        _add(session, "Apr start", "40", "Outros", date(2024, 4, 1))
        reports = ReportService(session, timezone="UTC")

        assert reports.summary("2024-03").grand_total == Decimal("50.00")
        assert reports.summary("2024-02").tx_count == 1
        assert reports.summary().tx_count == 4
        assert reports.summary("March").tx_count == 4
        assert reports.summary("2023-01").by_category == []
        assert reports.summary("2023-01").grand_total == Decimal("0.00")
        for impossible in ("2024-13", "2024-00", "0000-05"):
            empty = reports.summary(impossible)
            assert empty.by_category == []
            assert empty.tx_count == 0
            assert empty.grand_total == Decimal("0.00")


def test_monthly_trend_covers_trailing_twelve_months() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        _add(session, "Too old", "99", "Outros", date(2023, 6, 30))
        _add(session, "Window start", "10", "Outros", date(2023, 7, 1))
        _add(session, "Jan a", "15", "Lazer", date(2024, 1, 3))
        _add(session, "Jan b", "25", "Saúde", date(2024, 1, 28))
        _add(session, "Current", "7.5", "Transporte", date(2024, 6, 15))
        _add(session, "Future", "50", "Outros", date(2024, 7, 1))

        trend = ReportService(session, timezone="UTC").monthly_trend(
            today=date(2024, 6, 20)
        )

        assert [(m.month, m.total, m.count) for m in trend] == [
            ("2023-07", Decimal("10.00"), 1),
            ("2024-01", Decimal("40.00"), 2),
            ("2024-06", Decimal("7.50"), 1),
        ]


def test_monthly_trend_empty_store() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        assert ReportService(session, timezone="UTC").monthly_trend() == []
