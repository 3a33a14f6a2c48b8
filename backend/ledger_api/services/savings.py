from datetime import datetime
from decimal import Decimal
from typing import Any

from ledger_api.core.errors import NotFoundError, StoreError, ValidationError
from ledger_api.models.ledger import AddMoneyRequest, GoalFields, SavingsGoalCreateRequest, SavingsGoalUpdateRequest
from ledger_api.services.common import to_money

GOAL_COLUMNS = "id, user_id, title, target_amount, current_amount, icon, target_date, created_at, updated_at"


def list_goals(cur, user_id: str) -> list[dict[str, Any]]:
    cur.execute(
        f"""
        SELECT {GOAL_COLUMNS}
        FROM savings_goals
        WHERE user_id=%s
        ORDER BY created_at DESC, id DESC
        """,
        (user_id,),
    )
    return cur.fetchall()


def fetch_goal(cur, goal_id: int) -> dict[str, Any] | None:
    cur.execute(f"SELECT {GOAL_COLUMNS} FROM savings_goals WHERE id=%s", (goal_id,))
    return cur.fetchone()


def get_goal(cur, goal_id: int, user_id: str) -> dict[str, Any]:
    cur.execute(
        f"SELECT {GOAL_COLUMNS} FROM savings_goals WHERE id=%s AND user_id=%s",
        (goal_id, user_id),
    )
    row = cur.fetchone()
    if not row:
        raise NotFoundError("Savings goal not found")
    return row


def insert_goal(
    cur,
    user_id: str,
    record: GoalFields,
    created_at: datetime | None = None,
    updated_at: datetime | None = None,
) -> int:
    cur.execute(
        """
        INSERT INTO savings_goals (user_id, title, target_amount, current_amount, icon, target_date, created_at, updated_at)
        VALUES (%s, %s, %s, %s, %s, %s, COALESCE(%s::timestamptz, now()), COALESCE(%s::timestamptz, now()))
        RETURNING id
        """,
        (
            user_id,
            record.title,
            record.target_amount,
            record.current_amount,
            record.icon,
            record.target_date,
            created_at,
            updated_at,
        ),
    )
    return cur.fetchone()["id"]


def create_goal(cur, payload: SavingsGoalCreateRequest) -> dict[str, Any]:
    goal_id = insert_goal(cur, payload.user_id, payload)
    row = fetch_goal(cur, goal_id)
    if not row:
        raise StoreError("Failed to retrieve created savings goal")
    return row


def update_goal(cur, goal_id: int, payload: SavingsGoalUpdateRequest) -> dict[str, Any]:
    cur.execute(
        """
        UPDATE savings_goals
        SET title = COALESCE(%s::text, title),
            target_amount = COALESCE(%s::numeric, target_amount),
            current_amount = COALESCE(%s::numeric, current_amount),
            icon = COALESCE(%s::text, icon),
            target_date = COALESCE(%s::date, target_date),
            updated_at = now()
        WHERE id=%s AND user_id=%s
        RETURNING id
        """,
        (
            payload.title,
            payload.target_amount,
            payload.current_amount,
            payload.icon,
            payload.target_date,
            goal_id,
            payload.user_id,
        ),
    )
    if not cur.fetchone():
        raise NotFoundError("Savings goal not found")
    row = fetch_goal(cur, goal_id)
    if not row:
        raise NotFoundError("Savings goal not found")
    return row


def delete_goal(cur, goal_id: int, user_id: str) -> None:
    cur.execute(
        "DELETE FROM savings_goals WHERE id=%s AND user_id=%s RETURNING id",
        (goal_id, user_id),
    )
    if not cur.fetchone():
        raise NotFoundError("Savings goal not found")


def lock_goal_for_update(cur, goal_id: int, user_id: str) -> Decimal:
    cur.execute(
        """
        SELECT current_amount
        FROM savings_goals
        WHERE id=%s AND user_id=%s
        FOR UPDATE
        """,
        (goal_id, user_id),
    )
    row = cur.fetchone()
    if not row:
        raise NotFoundError("Savings goal not found")
    return Decimal(row["current_amount"] or 0)


def add_money_to_goal(cur, goal_id: int, payload: AddMoneyRequest) -> dict[str, Any]:
    # The row lock is held until the surrounding write unit commits.
    current = lock_goal_for_update(cur, goal_id, payload.user_id)
    new_amount = to_money(current + payload.amount)
    if new_amount < 0:
        raise ValidationError("Withdrawal exceeds the saved amount")
    cur.execute(
        """
        UPDATE savings_goals
        SET current_amount=%s,
            updated_at=now()
        WHERE id=%s AND user_id=%s
        """,
        (new_amount, goal_id, payload.user_id),
    )
    row = fetch_goal(cur, goal_id)
    if not row:
        raise NotFoundError("Savings goal not found")
    return row
