from typing import Any

from ledger_api.core.errors import NotFoundError, StoreError
from ledger_api.models.ledger import TransactionCreateRequest, TransactionFields

TRANSACTION_COLUMNS = "id, user_id, title, amount, category, created_at"


def list_transactions(cur, user_id: str) -> list[dict[str, Any]]:
    cur.execute(
        f"""
        SELECT {TRANSACTION_COLUMNS}
        FROM transactions
        WHERE user_id=%s
        ORDER BY created_at DESC, id DESC
        """,
        (user_id,),
    )
    return cur.fetchall()


def fetch_transaction(cur, transaction_id: int) -> dict[str, Any] | None:
    cur.execute(
        f"SELECT {TRANSACTION_COLUMNS} FROM transactions WHERE id=%s",
        (transaction_id,),
    )
    return cur.fetchone()


def get_transaction(cur, transaction_id: int, user_id: str) -> dict[str, Any]:
    cur.execute(
        f"SELECT {TRANSACTION_COLUMNS} FROM transactions WHERE id=%s AND user_id=%s",
        (transaction_id, user_id),
    )
    row = cur.fetchone()
    if not row:
        raise NotFoundError("Transaction not found")
    return row


def insert_transaction(cur, user_id: str, record: TransactionFields) -> int:
    cur.execute(
        """
        INSERT INTO transactions (user_id, title, amount, category, created_at)
        VALUES (%s, %s, %s, %s, COALESCE(%s::timestamptz, now()))
        RETURNING id
        """,
        (user_id, record.title, record.amount, record.category, record.created_at),
    )
    return cur.fetchone()["id"]


def create_transaction(cur, payload: TransactionCreateRequest) -> dict[str, Any]:
    transaction_id = insert_transaction(cur, payload.user_id, payload)
    row = fetch_transaction(cur, transaction_id)
    if not row:
        raise StoreError("Failed to retrieve created transaction")
    return row


def delete_transaction(cur, transaction_id: int, user_id: str) -> None:
    cur.execute(
        "DELETE FROM transactions WHERE id=%s AND user_id=%s RETURNING id",
        (transaction_id, user_id),
    )
    if not cur.fetchone():
        raise NotFoundError("Transaction not found")
