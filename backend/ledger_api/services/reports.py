"""Read-only aggregations over transactions, budgets and savings goals.

SQL does the filtered sums and grouping; the derived figures (percentages,
statuses, projections) are computed by the ``build_*`` helpers so they can be
exercised without a database. Every function treats "no rows" as zero.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any

from ledger_api.core.errors import ValidationError
from ledger_api.services.common import (
    ZERO,
    as_money,
    month_start,
    now_utc,
    parse_date_utc,
    percentage,
    period_start,
    shift_months,
    to_money,
)

CONFIDENCE_LEVELS = ("high", "medium", "low")
DISTRIBUTION_DEFAULT_DAYS = 30
WARNING_PERCENTAGE = Decimal("80")

# Joins each budget to the owner's expenses in its category since the budget's own period start.
_PERIOD_WINDOW_JOIN = """
    LEFT JOIN transactions t
      ON t.user_id=b.user_id
     AND t.category=b.category
     AND t.amount < 0
     AND t.created_at >= CASE b.period
                            WHEN 'weekly' THEN %s
                            WHEN 'yearly' THEN %s
                            ELSE %s
                          END
"""


def _period_cutoffs(now: datetime) -> tuple[datetime, datetime, datetime]:
    return period_start("weekly", now), period_start("yearly", now), period_start("monthly", now)


def balance_summary(cur, user_id: str) -> dict[str, Decimal]:
    cur.execute(
        """
        SELECT COALESCE(SUM(amount), 0) AS balance,
               COALESCE(SUM(CASE WHEN amount > 0 THEN amount ELSE 0 END), 0) AS income,
               COALESCE(SUM(CASE WHEN amount < 0 THEN -amount ELSE 0 END), 0) AS expenses
        FROM transactions
        WHERE user_id=%s
        """,
        (user_id,),
    )
    row = cur.fetchone() or {}
    return {
        "balance": as_money(row.get("balance")),
        "income": as_money(row.get("income")),
        "expenses": as_money(row.get("expenses")),
    }


def budget_summary(cur, user_id: str) -> dict[str, Any]:
    cur.execute(
        "SELECT COALESCE(SUM(amount), 0) AS total FROM budgets WHERE user_id=%s",
        (user_id,),
    )
    total_budget = as_money((cur.fetchone() or {}).get("total"))

    cur.execute(
        """
        SELECT COALESCE(SUM(ABS(amount)), 0) AS total
        FROM transactions
        WHERE user_id=%s AND amount < 0
        """,
        (user_id,),
    )
    total_spent = as_money((cur.fetchone() or {}).get("total"))

    cur.execute(
        """
        SELECT b.id,
               b.category,
               b.amount AS budget_amount,
               COALESCE(SUM(ABS(t.amount)), 0) AS spent_amount
        FROM budgets b
        LEFT JOIN transactions t
          ON t.user_id=b.user_id AND t.category=b.category AND t.amount < 0
        WHERE b.user_id=%s
        GROUP BY b.id, b.category, b.amount
        ORDER BY b.category ASC, b.id ASC
        """,
        (user_id,),
    )
    category_spending = [
        {
            "id": row["id"],
            "category": row["category"],
            "budgetAmount": as_money(row.get("budget_amount")),
            "spentAmount": as_money(row.get("spent_amount")),
        }
        for row in cur.fetchall()
    ]

    return {
        "totalBudget": total_budget,
        "totalSpent": total_spent,
        "remaining": total_budget - total_spent,
        "categorySpending": category_spending,
    }


def build_budget_progress(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    items = []
    for row in rows:
        budget_amount = as_money(row.get("budget_amount"))
        spent = as_money(row.get("spent_amount"))
        items.append(
            {
                "id": row["id"],
                "category": row["category"],
                "budgetAmount": budget_amount,
                "spentAmount": spent,
                "percentage": percentage(spent, budget_amount),
            }
        )
    items.sort(key=lambda item: (-item["percentage"], item["id"]))
    return items


def budget_progress(cur, user_id: str, period: str = "monthly", now: datetime | None = None) -> list[dict[str, Any]]:
    since = period_start(period, now or now_utc())
    cur.execute(
        """
        SELECT b.id,
               b.category,
               b.amount AS budget_amount,
               COALESCE(SUM(ABS(t.amount)), 0) AS spent_amount
        FROM budgets b
        LEFT JOIN transactions t
          ON t.user_id=b.user_id
         AND t.category=b.category
         AND t.amount < 0
         AND t.created_at >= %s
        WHERE b.user_id=%s
        GROUP BY b.id, b.category, b.amount
        """,
        (since, user_id),
    )
    return build_budget_progress(cur.fetchall())


def budget_status(spent: Decimal, budget_amount: Decimal, pct: Decimal) -> str:
    if spent > budget_amount:
        return "over_budget"
    if pct >= WARNING_PERCENTAGE:
        return "warning"
    return "on_track"


def build_budget_adherence(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    items = []
    for row in rows:
        budget_amount = as_money(row.get("budget_amount"))
        spent = as_money(row.get("spent_amount"))
        pct = percentage(spent, budget_amount)
        items.append(
            {
                "id": row["id"],
                "category": row["category"],
                "budgetAmount": budget_amount,
                "period": row.get("period") or "monthly",
                "spentAmount": spent,
                "remainingAmount": budget_amount - spent,
                "adherencePercentage": pct,
                "status": budget_status(spent, budget_amount, pct),
                "transactionCount": int(row.get("transaction_count") or 0),
            }
        )
    items.sort(key=lambda item: (-item["adherencePercentage"], item["id"]))
    return items


def budget_adherence(cur, user_id: str, now: datetime | None = None) -> list[dict[str, Any]]:
    cur.execute(
        f"""
        SELECT b.id,
               b.category,
               b.amount AS budget_amount,
               b.period,
               COALESCE(SUM(ABS(t.amount)), 0) AS spent_amount,
               COUNT(t.id) AS transaction_count
        FROM budgets b
        {_PERIOD_WINDOW_JOIN}
        WHERE b.user_id=%s
        GROUP BY b.id, b.category, b.amount, b.period
        """,
        (*_period_cutoffs(now or now_utc()), user_id),
    )
    return build_budget_adherence(cur.fetchall())


def monthly_expenditure(
    cur,
    user_id: str,
    year: int | None = None,
    month: int | None = None,
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    now = now or now_utc()
    year = now.year if year is None else year
    month = now.month if month is None else month
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12")
    if not 1900 <= year <= 9999:
        raise ValidationError("year must be a four digit year")

    start = month_start(now).replace(year=year, month=month)
    end = shift_months(start, 1)
    cur.execute(
        """
        SELECT category,
               COALESCE(SUM(CASE WHEN amount < 0 THEN -amount ELSE 0 END), 0) AS total_expense,
               COALESCE(SUM(CASE WHEN amount > 0 THEN amount ELSE 0 END), 0) AS total_income,
               COUNT(CASE WHEN amount < 0 THEN 1 END) AS expense_count
        FROM transactions
        WHERE user_id=%s AND created_at >= %s AND created_at < %s
        GROUP BY category
        ORDER BY total_expense DESC, category ASC
        """,
        (user_id, start, end),
    )

    label = f"{year:04d}-{month:02d}"
    items = []
    for row in cur.fetchall():
        total_expense = as_money(row.get("total_expense"))
        expense_count = int(row.get("expense_count") or 0)
        items.append(
            {
                "month": label,
                "category": row["category"],
                "totalExpense": total_expense,
                "totalIncome": as_money(row.get("total_income")),
                "expenseCount": expense_count,
                "avgExpense": to_money(total_expense / expense_count) if expense_count else ZERO,
            }
        )
    return items


def build_category_distribution(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    totals = [(row, as_money(row.get("total_amount"))) for row in rows]
    grand_total = sum((total for _, total in totals), ZERO)
    totals.sort(key=lambda pair: (-pair[1], pair[0]["category"]))
    return [
        {
            "category": row["category"],
            "totalAmount": total,
            "transactionCount": int(row.get("transaction_count") or 0),
            "avgAmount": as_money(row.get("avg_amount")),
            "minAmount": as_money(row.get("min_amount")),
            "maxAmount": as_money(row.get("max_amount")),
            "percentage": percentage(total, grand_total),
            "rank": rank,
        }
        for rank, (row, total) in enumerate(totals, start=1)
    ]


def category_distribution(
    cur,
    user_id: str,
    start_date: str | None = None,
    end_date: str | None = None,
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    end_dt = parse_date_utc(end_date, "endDate", end_of_day=True) if end_date else (now or now_utc())
    if start_date:
        start_dt = parse_date_utc(start_date, "startDate")
    else:
        start_dt = end_dt - timedelta(days=DISTRIBUTION_DEFAULT_DAYS)
    if start_dt > end_dt:
        raise ValidationError("startDate must be on or before endDate")

    cur.execute(
        """
        SELECT category,
               SUM(ABS(amount)) AS total_amount,
               COUNT(*) AS transaction_count,
               AVG(ABS(amount)) AS avg_amount,
               MIN(ABS(amount)) AS min_amount,
               MAX(ABS(amount)) AS max_amount
        FROM transactions
        WHERE user_id=%s
          AND amount < 0
          AND created_at >= %s
          AND created_at <= %s
        GROUP BY category
        """,
        (user_id, start_dt, end_dt),
    )
    return build_category_distribution(cur.fetchall())


def savings_summary(cur, user_id: str) -> dict[str, Any]:
    cur.execute(
        """
        SELECT COUNT(*) AS total_goals,
               COUNT(CASE WHEN current_amount >= target_amount THEN 1 END) AS completed_goals,
               COALESCE(SUM(current_amount), 0) AS total_saved,
               COALESCE(SUM(target_amount), 0) AS total_target
        FROM savings_goals
        WHERE user_id=%s
        """,
        (user_id,),
    )
    row = cur.fetchone() or {}
    return {
        "totalGoals": int(row.get("total_goals") or 0),
        "completedGoals": int(row.get("completed_goals") or 0),
        "totalSaved": as_money(row.get("total_saved")),
        "totalTarget": as_money(row.get("total_target")),
    }


def build_goal_progress(row: dict[str, Any], today: date) -> dict[str, Any]:
    target = as_money(row.get("target_amount"))
    current = as_money(row.get("current_amount"))
    remaining = max(target - current, ZERO)

    target_date = row.get("target_date")
    if isinstance(target_date, datetime):
        target_date = target_date.date()
    days_remaining = (target_date - today).days if target_date else None

    if current >= target:
        status = "completed"
    elif days_remaining is not None and days_remaining < 0:
        status = "overdue"
    else:
        status = "on_track"

    daily_needed = None
    if remaining > 0 and days_remaining is not None and days_remaining > 0:
        daily_needed = to_money(remaining / days_remaining)

    return {
        "id": row["id"],
        "title": row["title"],
        "targetAmount": target,
        "currentAmount": current,
        "remainingAmount": remaining,
        "progressPercentage": percentage(current, target),
        "targetDate": target_date.isoformat() if target_date else None,
        "daysRemaining": days_remaining,
        "status": status,
        "dailySavingsNeeded": daily_needed,
    }


def savings_goal_progress(cur, user_id: str, now: datetime | None = None) -> list[dict[str, Any]]:
    today = (now or now_utc()).date()
    cur.execute(
        """
        SELECT id, title, target_amount, current_amount, target_date
        FROM savings_goals
        WHERE user_id=%s
        ORDER BY target_date ASC NULLS LAST, id ASC
        """,
        (user_id,),
    )
    return [build_goal_progress(row, today) for row in cur.fetchall()]


def confidence_level(sample_months: int, months_ahead: int) -> str:
    if sample_months >= 3:
        base = 0
    elif sample_months >= 1:
        base = 1
    else:
        base = 2
    return CONFIDENCE_LEVELS[min(base + max(months_ahead, 1) - 1, len(CONFIDENCE_LEVELS) - 1)]


def build_forecast(
    history: list[dict[str, Any]],
    current_balance: Decimal,
    months_back: int,
    months_forecast: int,
    now: datetime,
) -> list[dict[str, Any]]:
    # Months without activity count as zero; confidence follows the active ones.
    samples = len(history)
    avg_income = sum((as_money(row.get("income")) for row in history), ZERO) / months_back
    avg_expense = sum((as_money(row.get("expense")) for row in history), ZERO) / months_back
    avg_savings = avg_income - avg_expense

    anchor = month_start(now)
    items = []
    for months_ahead in range(1, months_forecast + 1):
        forecast_start = shift_months(anchor, months_ahead)
        items.append(
            {
                "forecastMonth": forecast_start.strftime("%Y-%m"),
                "forecastDate": forecast_start.date().isoformat(),
                "projectedIncome": to_money(avg_income),
                "projectedExpense": to_money(avg_expense),
                "projectedSavings": to_money(avg_savings),
                "projectedBalance": to_money(current_balance + avg_savings * months_ahead),
                "confidenceLevel": confidence_level(samples, months_ahead),
            }
        )
    return items


def savings_forecast(
    cur,
    user_id: str,
    months_back: int = 6,
    months_forecast: int = 3,
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    if not 1 <= months_back <= 24:
        raise ValidationError("monthsBack must be between 1 and 24")
    if not 1 <= months_forecast <= 24:
        raise ValidationError("monthsForecast must be between 1 and 24")
    now = now or now_utc()

    # Only complete months feed the averages.
    history_end = month_start(now)
    history_start = shift_months(history_end, -months_back)
    cur.execute(
        """
        SELECT date_trunc('month', created_at) AS month,
               COALESCE(SUM(CASE WHEN amount > 0 THEN amount ELSE 0 END), 0) AS income,
               COALESCE(SUM(CASE WHEN amount < 0 THEN -amount ELSE 0 END), 0) AS expense
        FROM transactions
        WHERE user_id=%s AND created_at >= %s AND created_at < %s
        GROUP BY 1
        ORDER BY 1
        """,
        (user_id, history_start, history_end),
    )
    history = cur.fetchall()

    current_balance = balance_summary(cur, user_id)["balance"]
    return build_forecast(history, current_balance, months_back, months_forecast, now)


def reports_summary(cur, user_id: str, now: datetime | None = None) -> dict[str, Any]:
    now = now or now_utc()
    start = month_start(now)
    cur.execute(
        """
        SELECT COALESCE(SUM(CASE WHEN amount < 0 THEN -amount ELSE 0 END), 0) AS total_expense,
               COALESCE(SUM(CASE WHEN amount > 0 THEN amount ELSE 0 END), 0) AS total_income,
               COUNT(CASE WHEN amount < 0 THEN 1 END) AS expense_transactions
        FROM transactions
        WHERE user_id=%s AND created_at >= %s AND created_at < %s
        """,
        (user_id, start, shift_months(start, 1)),
    )
    monthly = cur.fetchone() or {}

    cur.execute(
        f"""
        SELECT COUNT(*) AS total_budgets,
               COUNT(CASE WHEN s.spent > s.amount THEN 1 END) AS over_budget_count
        FROM (
            SELECT b.id,
                   b.amount,
                   COALESCE(SUM(ABS(t.amount)), 0) AS spent
            FROM budgets b
            {_PERIOD_WINDOW_JOIN}
            WHERE b.user_id=%s
            GROUP BY b.id, b.amount
        ) s
        """,
        (*_period_cutoffs(now), user_id),
    )
    budgets = cur.fetchone() or {}

    return {
        "monthly": {
            "totalExpense": as_money(monthly.get("total_expense")),
            "totalIncome": as_money(monthly.get("total_income")),
            "expenseTransactions": int(monthly.get("expense_transactions") or 0),
        },
        "budgets": {
            "totalBudgets": int(budgets.get("total_budgets") or 0),
            "overBudgetCount": int(budgets.get("over_budget_count") or 0),
        },
        "savings": savings_summary(cur, user_id),
    }
