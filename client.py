"""Dashboard-side mirror of the budget API.

The remote API is authoritative. ``DashboardState`` keeps an in-memory copy of
expenses and budget limits, writes it to a local JSON file after every change,
and reads that file back only when the API cannot be reached. Writes are
optimistic: they are applied locally first and pushed to the API afterwards; a
failed push is logged and never rolled back or replayed.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Optional
from urllib.error import URLError
from urllib.parse import quote, urlencode
from urllib.request import Request, urlopen

from pydantic import ValidationError as PydanticValidationError

from models import Category
from schemas import BudgetIn, ExpenseIn, parse_model


logger = logging.getLogger(__name__)


class RemoteUnavailableError(RuntimeError):
    pass


class ApiClient:
    def __init__(
        self, base_url: str, *, timeout: float = 5.0, page_size: int = 200
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.page_size = page_size

    def _request(
        self,
        method: str,
        path: str,
        payload: Optional[dict] = None,
        query: Optional[dict] = None,
    ):
        url = f"{self.base_url}{path}"
        if query:
            url = f"{url}?{urlencode(query)}"
        headers = {"Accept": "application/json"}
        data = None
        if payload is not None:
            data = json.dumps(payload).encode("utf-8")
            headers["Content-Type"] = "application/json"
        req = Request(url, data=data, headers=headers, method=method)
        try:
            with urlopen(req, timeout=self.timeout) as resp:
                raw = resp.read()
        except (URLError, TimeoutError, OSError) as exc:
            raise RemoteUnavailableError(f"{method} {path} failed: {exc}") from exc
        if not raw:
            return None
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise RemoteUnavailableError(f"{method} {path}: undecodable body") from exc

    def list_expenses(self) -> list[ExpenseIn]:
        expenses: list[ExpenseIn] = []
        page = 1
        try:
            while True:
                body = self._request(
                    "GET", "/expenses", query={"page": page, "limit": self.page_size}
                )
                rows = body["data"]
                expenses.extend(ExpenseIn.model_validate(row) for row in rows)
                if not rows or len(expenses) >= int(body["total"]):
                    return expenses
                page += 1
        except (KeyError, TypeError, ValueError) as exc:
            raise RemoteUnavailableError("Unexpected /expenses response") from exc

    def list_budgets(self) -> list[BudgetIn]:
        body = self._request("GET", "/budgets")
        try:
            return [
                BudgetIn(category=row["category"], limit=row["monthly_limit"])
                for row in body
            ]
        except (KeyError, TypeError, PydanticValidationError) as exc:
            raise RemoteUnavailableError("Unexpected /budgets response") from exc

    def save_expense(self, expense: ExpenseIn) -> None:
        self._request(
            "POST", "/expenses", payload=expense.model_dump(mode="json", by_alias=True)
        )

    def delete_expense(self, expense_id: str) -> None:
        self._request("DELETE", f"/expenses/{quote(expense_id, safe='')}")

    def put_budget(self, budget: BudgetIn) -> None:
        self._request("PUT", "/budgets", payload=budget.model_dump(mode="json"))


class LocalMirror:
    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def load(self) -> tuple[list[ExpenseIn], list[BudgetIn]]:
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
            expenses = [ExpenseIn.model_validate(r) for r in payload["expenses"]]
            budgets = [BudgetIn.model_validate(r) for r in payload["budgets"]]
        except FileNotFoundError:
            return [], []
        except (OSError, KeyError, TypeError, ValueError) as exc:
            logger.warning(f"mirror_load_failed: path={self.path} error={exc}")
            return [], []
        return expenses, budgets

    def save(self, expenses: list[ExpenseIn], budgets: list[BudgetIn]) -> None:
        payload = {
            "expenses": [e.model_dump(mode="json", by_alias=True) for e in expenses],
            "budgets": [b.model_dump(mode="json") for b in budgets],
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f"{self.path.name}-", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise


@dataclass(frozen=True)
class CategoryUsage:
    name: Category
    value: Decimal
    limit: Decimal
    percent: Decimal


class DashboardState:
    def __init__(self, api: ApiClient, mirror: LocalMirror) -> None:
        self.api = api
        self.mirror = mirror
        self.expenses: list[ExpenseIn] = []
        self.budgets: list[BudgetIn] = []
        self.source: Optional[str] = None
        self._executor: Optional[ThreadPoolExecutor] = None

    def refresh(self) -> str:
        try:
            expenses = self.api.list_expenses()
            budgets = self.api.list_budgets()
        except RemoteUnavailableError as exc:
            logger.warning(f"mirror_fallback: source=local reason={exc}")
            self.expenses, self.budgets = self.mirror.load()
            self.source = "local"
            return self.source
        self.expenses, self.budgets = expenses, budgets
        self.source = "remote"
        self._persist()
        return self.source

    def refresh_in_background(self) -> Future:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="mirror-refresh"
            )
        return self._executor.submit(self.refresh)

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def _persist(self) -> None:
        try:
            self.mirror.save(self.expenses, self.budgets)
        except OSError as exc:
            logger.warning(f"mirror_save_failed: path={self.mirror.path} error={exc}")

    def add_expense(
        self,
        description: str,
        amount: Decimal | float | str,
        category: Category | str,
        on: Optional[date] = None,
        is_recurring: bool = False,
    ) -> ExpenseIn:
        expense = parse_model(
            ExpenseIn,
            {
                "id": str(uuid.uuid4()),
                "description": description,
                "amount": amount,
                "category": category,
                "date": on or date.today(),
                "is_recurring": is_recurring,
            },
        )
        self.expenses.insert(0, expense)
        self._persist()
        try:
            self.api.save_expense(expense)
        except RemoteUnavailableError as exc:
            logger.warning(f"sync_failed: op=save_expense id={expense.id} error={exc}")
        return expense

    def remove_expense(self, expense_id: str) -> None:
        self.expenses = [e for e in self.expenses if e.id != expense_id]
        self._persist()
        try:
            self.api.delete_expense(expense_id)
        except RemoteUnavailableError as exc:
            logger.warning(f"sync_failed: op=delete_expense id={expense_id} error={exc}")

    def update_budget(
        self, category: Category | str, limit: Decimal | float | str
    ) -> BudgetIn:
        budget = parse_model(BudgetIn, {"category": category, "limit": limit})
        self.budgets = [b for b in self.budgets if b.category != budget.category]
        self.budgets.append(budget)
        self._persist()
        try:
            self.api.put_budget(budget)
        except RemoteUnavailableError as exc:
            logger.warning(
                f"sync_failed: op=put_budget category={budget.category.value} "
                f"error={exc}"
            )
        return budget

    @property
    def total_spent(self) -> Decimal:
        return sum((e.amount for e in self.expenses), Decimal("0.00"))

    def limit_for(self, category: Category) -> Optional[Decimal]:
        for budget in self.budgets:
            if budget.category == category:
                return budget.limit
        return None

    def category_breakdown(self) -> list[CategoryUsage]:
        spent = {category: Decimal("0.00") for category in Category}
        for expense in self.expenses:
            spent[expense.category] += expense.amount
        rows: list[CategoryUsage] = []
        for category in Category:
            limit = self.limit_for(category) or Decimal("0.00")
            value = spent[category]
            if value <= 0 and limit <= 0:
                continue
            percent = Decimal("0.0")
            if limit > 0:
                percent = (value / limit * 100).quantize(
                    Decimal("0.1"), rounding=ROUND_HALF_UP
                )
            rows.append(CategoryUsage(category, value, limit, percent))
        return rows

    def search(self, term: str) -> list[ExpenseIn]:
        needle = term.strip().lower()
        if not needle:
            return list(self.expenses)
        return [
            e
            for e in self.expenses
            if needle in e.description.lower() or needle in e.category.value.lower()
        ]

    def budget_rows(self) -> list[tuple[Category, Optional[Decimal]]]:
        return [(category, self.limit_for(category)) for category in Category]
