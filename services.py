from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Sequence

import bcrypt
from sqlalchemy import func, select
from sqlalchemy.orm import Session, joinedload

from config import get_settings
from models import (
    DEFAULT_BILLING_CYCLE_START,
    DEFAULT_CATEGORY_COLOR,
    Category,
    Expense,
    Income,
    User,
)
from periods import (
    MAX_CYCLE_START,
    MIN_CYCLE_START,
    Period,
    billing_period,
    days_in_month,
    month_period,
    previous_month_period,
    resolve_month,
)
from schemas import (
    CategoryIn,
    CategoryUpdate,
    ExpenseIn,
    ExpenseUpdate,
    IncomeIn,
    IncomeUpdate,
    RegisterIn,
    SettingsIn,
)

RECENT_LIMIT = 5
ZERO = Decimal("0")

DEFAULT_CATEGORIES: tuple[tuple[str, str, str], ...] = (
    ("Food & Drinks", "#ef4444", "🍔"),
    ("Transportation", "#f97316", "🚗"),
    ("Shopping", "#eab308", "🛒"),
    ("Bills", "#22c55e", "📄"),
    ("Entertainment", "#3b82f6", "🎬"),
    ("Health", "#8b5cf6", "💊"),
    ("Other", "#6b7280", "📦"),
)


class InvalidInput(ValueError):
    pass


class RecordNotFound(ValueError):
    pass


class RecordConflict(ValueError):
    pass


@dataclass
class ExpenseFilters:
    month: Optional[int] = None
    year: Optional[int] = None
    category_id: Optional[int] = None


@dataclass
class CategoryUsage:
    id: int
    name: str
    color: str
    icon: Optional[str]
    expense_count: int


@dataclass
class CategoryTotal:
    category: Category
    total: Decimal = ZERO
    count: int = 0


@dataclass(frozen=True)
class DailyAmount:
    day: int
    amount: Decimal


@dataclass
class MonthlySummary:
    month: int
    year: int
    current_total: Decimal
    previous_total: Decimal
    percentage_change: float
    total_income: Decimal
    balance: Decimal
    category_breakdown: list[CategoryTotal] = field(default_factory=list)
    daily_data: list[DailyAmount] = field(default_factory=list)
    recent_transactions: list[Expense] = field(default_factory=list)
    recent_incomes: list[Income] = field(default_factory=list)


def percentage_change(current: Decimal, previous: Decimal) -> float:
    """Month over month change; a jump from nothing is reported as +100%."""
    if previous > 0:
        return float((current - previous) / previous * 100)
    if current > 0:
        return 100.0
    return 0.0


def summarize_month(
    expenses: Sequence[Expense],
    incomes: Sequence[Income],
    previous_total: Decimal,
    year: int,
    month: int,
) -> MonthlySummary:
    """Aggregate one month of already loaded rows.

    ``expenses`` and ``incomes`` are expected newest first; the recent lists
    keep that order.
    """
    current_total = sum((e.amount for e in expenses), ZERO)
    total_income = sum((i.amount for i in incomes), ZERO)

    by_category: dict[int, CategoryTotal] = {}
    daily: dict[int, Decimal] = defaultdict(lambda: ZERO)
    for expense in expenses:
        bucket = by_category.get(expense.category_id)
        if bucket is None:
            bucket = CategoryTotal(category=expense.category)
            by_category[expense.category_id] = bucket
        bucket.total += expense.amount
        bucket.count += 1
        daily[expense.date.day] += expense.amount

    breakdown = sorted(
        by_category.values(), key=lambda item: (-item.total, item.category.id)
    )
    daily_data = [
        DailyAmount(day=day, amount=daily.get(day, ZERO))
        for day in range(1, days_in_month(year, month) + 1)
    ]

    return MonthlySummary(
        month=month,
        year=year,
        current_total=current_total,
        previous_total=previous_total,
        percentage_change=percentage_change(current_total, previous_total),
        total_income=total_income,
        balance=total_income - current_total,
        category_breakdown=breakdown,
        daily_data=daily_data,
        recent_transactions=list(expenses[:RECENT_LIMIT]),
        recent_incomes=list(incomes[:RECENT_LIMIT]),
    )


def _normalize_email(email: str) -> str:
    return email.strip().lower()


class UserService:
    def __init__(self, session: Session, *, bcrypt_rounds: Optional[int] = None) -> None:
        self.session = session
        self.bcrypt_rounds = bcrypt_rounds or get_settings().bcrypt_rounds

    def get(self, user_id: int) -> Optional[User]:
        return self.session.get(User, user_id)

    def register(self, data: RegisterIn) -> User:
        email = _normalize_email(data.email)
        if not email or not data.password:
            raise InvalidInput("Email and password are required")
        password = data.password.encode("utf-8")
        if len(password) > 72:
            raise InvalidInput("Password is too long")
        existing = self.session.scalar(select(User).where(User.email == email))
        if existing:
            raise RecordConflict("User already exists")

        user = User(
            email=email,
            password_hash=bcrypt.hashpw(
                password, bcrypt.gensalt(rounds=self.bcrypt_rounds)
            ).decode("utf-8"),
            name=(data.name or "").strip() or None,
            billing_cycle_start=DEFAULT_BILLING_CYCLE_START,
        )
        self.session.add(user)
        self.session.flush()
        self.session.add_all(
            Category(user_id=user.id, name=name, color=color, icon=icon)
            for name, color, icon in DEFAULT_CATEGORIES
        )
        self.session.commit()
        self.session.refresh(user)
        return user

    def authenticate(self, email: str, password: str) -> Optional[User]:
        user = self.session.scalar(
            select(User).where(User.email == _normalize_email(email))
        )
        if not user:
            return None
        try:
            matches = bcrypt.checkpw(
                password.encode("utf-8"), user.password_hash.encode("utf-8")
            )
        except ValueError:
            return None
        return user if matches else None


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self) -> list[CategoryUsage]:
        stmt = (
            select(Category, func.count(Expense.id).label("expense_count"))
            .outerjoin(Expense, Expense.category_id == Category.id)
            .where(Category.user_id == self.user_id)
            .group_by(Category.id)
            .order_by(Category.name, Category.id)
        )
        return [
            CategoryUsage(
                id=category.id,
                name=category.name,
                color=category.color,
                icon=category.icon,
                expense_count=int(count or 0),
            )
            for category, count in self.session.execute(stmt).all()
        ]

    def get(self, category_id: int) -> Category:
        category = self.session.scalar(
            select(Category).where(
                Category.id == category_id, Category.user_id == self.user_id
            )
        )
        if not category:
            raise RecordNotFound("Category not found")
        return category

    def _ensure_name_free(self, name: str, *, exclude_id: Optional[int] = None) -> None:
        stmt = select(Category.id).where(
            Category.user_id == self.user_id, Category.name == name
        )
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        if self.session.scalar(stmt) is not None:
            raise RecordConflict("Category with this name already exists")

    def create(self, data: CategoryIn) -> Category:
        if not data.name:
            raise InvalidInput("Category name is required")
        self._ensure_name_free(data.name)
        category = Category(
            user_id=self.user_id,
            name=data.name,
            color=data.color or DEFAULT_CATEGORY_COLOR,
            icon=data.icon,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def update(self, category_id: int, data: CategoryUpdate) -> Category:
        category = self.get(category_id)
        changes = data.model_dump(exclude_unset=True)
        if "name" in changes and changes["name"] != category.name:
            self._ensure_name_free(changes["name"], exclude_id=category.id)
        for name, value in changes.items():
            setattr(category, name, value)
        self.session.commit()
        self.session.refresh(category)
        return category

    def expense_count(self, category_id: int) -> int:
        return int(
            self.session.execute(
                select(func.count(Expense.id)).where(
                    Expense.category_id == category_id
                )
            ).scalar_one()
            or 0
        )

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        count = self.expense_count(category.id)
        if count > 0:
            raise RecordConflict(
                f"Cannot delete category with {count} expenses. "
                "Delete or move expenses first."
            )
        self.session.delete(category)
        self.session.commit()


class ExpenseService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _check_category(self, category_id: int) -> Category:
        try:
            return CategoryService(self.session, self.user_id).get(category_id)
        except RecordNotFound as exc:
            raise InvalidInput("Category not found") from exc

    def create(self, data: ExpenseIn) -> Expense:
        self._check_category(data.category_id)
        expense = Expense(
            user_id=self.user_id,
            amount=data.amount,
            date=data.date,
            note=data.note,
            category_id=data.category_id,
        )
        self.session.add(expense)
        self.session.commit()
        return self.get(expense.id)

    def get(self, expense_id: int) -> Expense:
        expense = self.session.scalar(
            select(Expense)
            .options(joinedload(Expense.category))
            .where(Expense.id == expense_id, Expense.user_id == self.user_id)
        )
        if not expense:
            raise RecordNotFound("Expense not found")
        return expense

    def update(self, expense_id: int, data: ExpenseUpdate) -> Expense:
        expense = self.get(expense_id)
        changes = data.model_dump(exclude_unset=True)
        if "category_id" in changes:
            expense.category = self._check_category(changes.pop("category_id"))
        for name, value in changes.items():
            setattr(expense, name, value)
        self.session.commit()
        self.session.refresh(expense)
        return expense

    def delete(self, expense_id: int) -> None:
        expense = self.get(expense_id)
        self.session.delete(expense)
        self.session.commit()

    def list(self, filters: Optional[ExpenseFilters] = None) -> list[Expense]:
        filters = filters or ExpenseFilters()
        stmt = (
            select(Expense)
            .options(joinedload(Expense.category))
            .where(Expense.user_id == self.user_id)
            .order_by(Expense.date.desc(), Expense.id.desc())
        )
        if filters.month is not None and filters.year is not None:
            try:
                period = month_period(filters.year, filters.month)
            except ValueError as exc:
                raise InvalidInput(str(exc)) from exc
            stmt = stmt.where(Expense.date.between(period.start, period.end))
        if filters.category_id is not None:
            stmt = stmt.where(Expense.category_id == filters.category_id)
        return list(self.session.scalars(stmt).all())

    def for_period(self, period: Period) -> list[Expense]:
        stmt = (
            select(Expense)
            .options(joinedload(Expense.category))
            .where(
                Expense.user_id == self.user_id,
                Expense.date.between(period.start, period.end),
            )
            .order_by(Expense.date.desc(), Expense.id.desc())
        )
        return list(self.session.scalars(stmt).all())

    def total_for_period(self, period: Period) -> Decimal:
        total = self.session.execute(
            select(func.sum(Expense.amount)).where(
                Expense.user_id == self.user_id,
                Expense.date.between(period.start, period.end),
            )
        ).scalar_one()
        return Decimal(total) if total is not None else ZERO


class IncomeService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def create(self, data: IncomeIn) -> Income:
        income = Income(
            user_id=self.user_id,
            amount=data.amount,
            type=data.type,
            date=data.date,
            note=data.note,
        )
        self.session.add(income)
        self.session.commit()
        self.session.refresh(income)
        return income

    def get(self, income_id: int) -> Income:
        income = self.session.scalar(
            select(Income).where(Income.id == income_id, Income.user_id == self.user_id)
        )
        if not income:
            raise RecordNotFound("Income not found")
        return income

    def update(self, income_id: int, data: IncomeUpdate) -> Income:
        income = self.get(income_id)
        for name, value in data.model_dump(exclude_unset=True).items():
            setattr(income, name, value)
        self.session.commit()
        self.session.refresh(income)
        return income

    def delete(self, income_id: int) -> None:
        income = self.get(income_id)
        self.session.delete(income)
        self.session.commit()

    def for_period(self, period: Period) -> list[Income]:
        stmt = (
            select(Income)
            .where(
                Income.user_id == self.user_id,
                Income.date.between(period.start, period.end),
            )
            .order_by(Income.date.desc(), Income.id.desc())
        )
        return list(self.session.scalars(stmt).all())

    def list_for_month(
        self, month: Optional[int] = None, year: Optional[int] = None
    ) -> tuple[list[Income], Decimal]:
        try:
            year, month = resolve_month(month, year)
        except ValueError as exc:
            raise InvalidInput(str(exc)) from exc
        incomes = self.for_period(month_period(year, month))
        return incomes, sum((i.amount for i in incomes), ZERO)


class SettingsService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _user(self) -> User:
        user = self.session.get(User, self.user_id)
        if not user:
            raise RecordNotFound("User not found")
        return user

    def billing_cycle_start(self) -> int:
        return self._user().billing_cycle_start or DEFAULT_BILLING_CYCLE_START

    def update(self, data: SettingsIn) -> int:
        value = data.billing_cycle_start
        if not MIN_CYCLE_START <= value <= MAX_CYCLE_START:
            raise InvalidInput(
                f"Billing cycle start must be between {MIN_CYCLE_START} and {MAX_CYCLE_START}"
            )
        user = self._user()
        user.billing_cycle_start = value
        self.session.commit()
        return user.billing_cycle_start

    def period(self, month: Optional[int] = None, year: Optional[int] = None) -> Period:
        try:
            year, month = resolve_month(month, year)
        except ValueError as exc:
            raise InvalidInput(str(exc)) from exc
        return billing_period(year, month, self.billing_cycle_start())


class StatsService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.expenses = ExpenseService(session, user_id)
        self.incomes = IncomeService(session, user_id)

    def monthly_summary(
        self, month: Optional[int] = None, year: Optional[int] = None
    ) -> MonthlySummary:
        try:
            year, month = resolve_month(month, year)
        except ValueError as exc:
            raise InvalidInput(str(exc)) from exc
        current = month_period(year, month)
        previous = previous_month_period(year, month)

        return summarize_month(
            self.expenses.for_period(current),
            self.incomes.for_period(current),
            self.expenses.total_for_period(previous) if previous else ZERO,
            year,
            month,
        )
