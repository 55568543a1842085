from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import Category, Expense, Income, IncomeType, User
from services import InvalidInput, StatsService, percentage_change, summarize_month


def make_session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def add_user(session: Session, email: str = "ana@example.com") -> User:
    user = User(email=email, password_hash="x")
    session.add(user)
    session.commit()
    return user


def add_category(session: Session, user: User, name: str) -> Category:
    category = Category(user_id=user.id, name=name, color="#000000")
    session.add(category)
    session.commit()
    return category


def add_expense(session, user, category, amount, day) -> Expense:
    expense = Expense(
        user_id=user.id, amount=Decimal(amount), date=day, category_id=category.id
    )
    session.add(expense)
    session.commit()
    return expense


def add_income(session, user, amount, day) -> Income:
    income = Income(
        user_id=user.id, amount=Decimal(amount), type=IncomeType.salary, date=day
    )
    session.add(income)
    session.commit()
    return income


def test_empty_month_has_zero_totals_and_dense_series() -> None:
    session = make_session()
    user = add_user(session)

    summary = StatsService(session, user.id).monthly_summary(6, 2025)

    assert summary.current_total == 0
    assert summary.previous_total == 0
    assert summary.percentage_change == 0
    assert summary.total_income == 0
    assert summary.balance == 0
    assert summary.category_breakdown == []
    assert summary.recent_transactions == []
    assert summary.recent_incomes == []
    assert len(summary.daily_data) == 30
    assert all(point.amount == 0 for point in summary.daily_data)
    assert (summary.month, summary.year) == (6, 2025)


@pytest.mark.parametrize(
    "previous, current, expected",
    [
        ("0", "0", 0.0),
        ("0", "5000", 100.0),
        ("1000", "1500", 50.0),
        ("2000", "500", -75.0),
    ],
)
def test_percentage_change_edge_cases(previous, current, expected) -> None:
    assert percentage_change(Decimal(current), Decimal(previous)) == expected


def test_percentage_change_against_previous_month() -> None:
    session = make_session()
    user = add_user(session)
    food = add_category(session, user, "Food")
    add_expense(session, user, food, "1000", date(2025, 1, 31))
    add_expense(session, user, food, "900", date(2025, 2, 3))
    add_expense(session, user, food, "600", date(2025, 2, 28))

    summary = StatsService(session, user.id).monthly_summary(2, 2025)

    assert summary.previous_total == Decimal("1000")
    assert summary.current_total == Decimal("1500")
    assert summary.percentage_change == 50.0


def test_january_compares_against_december_of_previous_year() -> None:
    session = make_session()
    user = add_user(session)
    food = add_category(session, user, "Food")
    add_expense(session, user, food, "400", date(2024, 12, 15))
    add_expense(session, user, food, "100", date(2024, 11, 30))

    summary = StatsService(session, user.id).monthly_summary(1, 2025)

    assert summary.previous_total == Decimal("400")
    assert summary.current_total == 0
    assert summary.percentage_change == -100.0


@pytest.mark.parametrize("year, days", [(2024, 29), (2025, 28), (2000, 29), (1900, 28)])
def test_daily_series_matches_february_length(year: int, days: int) -> None:
    session = make_session()
    user = add_user(session)
    food = add_category(session, user, "Food")
    add_expense(session, user, food, "10", date(year, 2, days))

    summary = StatsService(session, user.id).monthly_summary(2, year)

    assert [point.day for point in summary.daily_data] == list(range(1, days + 1))
    assert summary.daily_data[-1].amount == Decimal("10")
    assert sum(point.amount for point in summary.daily_data) == Decimal("10")


def test_daily_series_sums_expenses_of_the_same_day() -> None:
    session = make_session()
    user = add_user(session)
    food = add_category(session, user, "Food")
    travel = add_category(session, user, "Travel")
    add_expense(session, user, food, "25.50", date(2025, 3, 1))
    add_expense(session, user, travel, "74.50", date(2025, 3, 1))
    add_expense(session, user, food, "10", date(2025, 3, 31))

    summary = StatsService(session, user.id).monthly_summary(3, 2025)

    amounts = {point.day: point.amount for point in summary.daily_data}
    assert amounts[1] == Decimal("100")
    assert amounts[31] == Decimal("10")
    assert amounts[15] == 0


def test_balance_is_income_minus_expenses_even_when_negative() -> None:
    session = make_session()
    user = add_user(session)
    food = add_category(session, user, "Food")
    add_income(session, user, "1000", date(2025, 4, 1))
    add_expense(session, user, food, "1500", date(2025, 4, 2))

    summary = StatsService(session, user.id).monthly_summary(4, 2025)

    assert summary.total_income == Decimal("1000")
    assert summary.balance == summary.total_income - summary.current_total
    assert summary.balance == Decimal("-500")


def test_category_breakdown_sorted_by_total_descending() -> None:
    session = make_session()
    user = add_user(session)
    food = add_category(session, user, "Food")
    rent = add_category(session, user, "Rent")
    fun = add_category(session, user, "Fun")
    add_expense(session, user, food, "100", date(2025, 5, 1))
    add_expense(session, user, food, "200", date(2025, 5, 2))
    add_expense(session, user, rent, "500", date(2025, 5, 3))
    add_expense(session, user, fun, "200", date(2025, 5, 4))

    summary = StatsService(session, user.id).monthly_summary(5, 2025)

    assert [item.total for item in summary.category_breakdown] == [
        Decimal("500"),
        Decimal("300"),
        Decimal("200"),
    ]
    assert [item.category.name for item in summary.category_breakdown] == [
        "Rent",
        "Food",
        "Fun",
    ]
    assert [item.count for item in summary.category_breakdown] == [1, 2, 1]


def test_category_breakdown_ties_ordered_by_category_id() -> None:
    session = make_session()
    user = add_user(session)
    first = add_category(session, user, "Zeta")
    second = add_category(session, user, "Alpha")
    add_expense(session, user, second, "50", date(2025, 5, 20))
    add_expense(session, user, first, "50", date(2025, 5, 1))

    summary = StatsService(session, user.id).monthly_summary(5, 2025)

    assert [item.category.id for item in summary.category_breakdown] == [
        first.id,
        second.id,
    ]


def test_recent_lists_keep_five_newest() -> None:
    session = make_session()
    user = add_user(session)
    food = add_category(session, user, "Food")
    for day in range(1, 8):
        add_expense(session, user, food, "1", date(2025, 7, day))
        add_income(session, user, "2", date(2025, 7, day))

    summary = StatsService(session, user.id).monthly_summary(7, 2025)

    assert [e.date.day for e in summary.recent_transactions] == [7, 6, 5, 4, 3]
    assert [i.date.day for i in summary.recent_incomes] == [7, 6, 5, 4, 3]
    assert summary.current_total == Decimal("7")
    assert summary.total_income == Decimal("14")


def test_summary_ignores_other_users_and_other_months() -> None:
    session = make_session()
    owner = add_user(session, "owner@example.com")
    other = add_user(session, "other@example.com")
    owner_food = add_category(session, owner, "Food")
    other_food = add_category(session, other, "Food")
    add_expense(session, owner, owner_food, "30", date(2025, 8, 10))
    add_expense(session, owner, owner_food, "99", date(2025, 9, 1))
    add_expense(session, other, other_food, "1000", date(2025, 8, 10))
    add_income(session, other, "5000", date(2025, 8, 10))

    summary = StatsService(session, owner.id).monthly_summary(8, 2025)

    assert summary.current_total == Decimal("30")
    assert summary.total_income == 0
    assert len(summary.category_breakdown) == 1
    assert summary.category_breakdown[0].category.id == owner_food.id


def test_summary_rejects_invalid_month() -> None:
    session = make_session()
    user = add_user(session)

    with pytest.raises(InvalidInput):
        StatsService(session, user.id).monthly_summary(13, 2025)


def test_summarize_month_without_database() -> None:
    groceries = SimpleNamespace(id=1, name="Groceries")
    transport = SimpleNamespace(id=2, name="Transport")
    expenses = [
        SimpleNamespace(
            amount=Decimal("20"), date=date(2023, 4, 30), category_id=2, category=transport
        ),
        SimpleNamespace(
            amount=Decimal("5"), date=date(2023, 4, 2), category_id=1, category=groceries
        ),
    ]
    incomes = [SimpleNamespace(amount=Decimal("100"), date=date(2023, 4, 1))]

    summary = summarize_month(expenses, incomes, Decimal("0"), 2023, 4)

    assert summary.current_total == Decimal("25")
    assert summary.percentage_change == 100.0
    assert summary.balance == Decimal("75")
    assert len(summary.daily_data) == 30
    assert summary.daily_data[29].amount == Decimal("20")
    assert summary.category_breakdown[0].category is transport
    assert summary.recent_transactions == expenses
