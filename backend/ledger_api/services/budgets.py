from datetime import datetime
from typing import Any

from psycopg.errors import UniqueViolation

from ledger_api.core.errors import ConflictError, NotFoundError, StoreError
from ledger_api.models.ledger import BudgetCreateRequest, BudgetFields, BudgetUpdateRequest

BUDGET_COLUMNS = "id, user_id, category, amount, period, created_at, updated_at"
DUPLICATE_CATEGORY = "Budget already exists for this category"


def list_budgets(cur, user_id: str) -> list[dict[str, Any]]:
    cur.execute(
        f"""
        SELECT {BUDGET_COLUMNS}
        FROM budgets
        WHERE user_id=%s
        ORDER BY created_at DESC, id DESC
        """,
        (user_id,),
    )
    return cur.fetchall()


def fetch_budget(cur, budget_id: int) -> dict[str, Any] | None:
    cur.execute(f"SELECT {BUDGET_COLUMNS} FROM budgets WHERE id=%s", (budget_id,))
    return cur.fetchone()


def get_budget(cur, budget_id: int, user_id: str) -> dict[str, Any]:
    cur.execute(
        f"SELECT {BUDGET_COLUMNS} FROM budgets WHERE id=%s AND user_id=%s",
        (budget_id, user_id),
    )
    row = cur.fetchone()
    if not row:
        raise NotFoundError("Budget not found")
    return row


def budget_exists(cur, user_id: str, category: str) -> bool:
    cur.execute(
        "SELECT 1 FROM budgets WHERE user_id=%s AND category=%s",
        (user_id, category),
    )
    return cur.fetchone() is not None


def insert_budget(
    cur,
    user_id: str,
    record: BudgetFields,
    created_at: datetime | None = None,
    updated_at: datetime | None = None,
) -> int:
    cur.execute(
        """
        INSERT INTO budgets (user_id, category, amount, period, created_at, updated_at)
        VALUES (%s, %s, %s, %s, COALESCE(%s::timestamptz, now()), COALESCE(%s::timestamptz, now()))
        RETURNING id
        """,
        (user_id, record.category, record.amount, record.period, created_at, updated_at),
    )
    return cur.fetchone()["id"]


def create_budget(cur, payload: BudgetCreateRequest) -> dict[str, Any]:
    if budget_exists(cur, payload.user_id, payload.category):
        raise ConflictError(DUPLICATE_CATEGORY)
    try:
        budget_id = insert_budget(cur, payload.user_id, payload)
    except UniqueViolation as exc:
        # Lost the race against a concurrent create for the same category.
        raise ConflictError(DUPLICATE_CATEGORY) from exc
    row = fetch_budget(cur, budget_id)
    if not row:
        raise StoreError("Failed to retrieve created budget")
    return row


def update_budget(cur, budget_id: int, payload: BudgetUpdateRequest) -> dict[str, Any]:
    try:
        cur.execute(
            """
            UPDATE budgets
            SET category = COALESCE(%s::text, category),
                amount = COALESCE(%s::numeric, amount),
                period = COALESCE(%s::text, period),
                updated_at = now()
            WHERE id=%s AND user_id=%s
            RETURNING id
            """,
            (payload.category, payload.amount, payload.period, budget_id, payload.user_id),
        )
    except UniqueViolation as exc:
        raise ConflictError(DUPLICATE_CATEGORY) from exc
    if not cur.fetchone():
        raise NotFoundError("Budget not found")
    row = fetch_budget(cur, budget_id)
    if not row:
        raise NotFoundError("Budget not found")
    return row


def delete_budget(cur, budget_id: int, user_id: str) -> None:
    cur.execute(
        "DELETE FROM budgets WHERE id=%s AND user_id=%s RETURNING id",
        (budget_id, user_id),
    )
    if not cur.fetchone():
        raise NotFoundError("Budget not found")
