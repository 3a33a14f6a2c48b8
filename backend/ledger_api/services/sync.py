"""Best-effort application of records a client accumulated while offline.

Each record is an independent insert attempt; the batch is a fold over the
records producing one ``SyncOutcome`` per input. A record that fails to parse
never reaches the store, and a record the store rejects is rolled back to a
savepoint so the records around it still commit with the batch.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable

import psycopg
from psycopg.errors import UniqueViolation
from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from ledger_api.models.ledger import (
    SyncBudgetRecord,
    SyncGoalRecord,
    SyncUploadRequest,
    TransactionFields,
    describe_errors,
)
from ledger_api.services.budgets import insert_budget
from ledger_api.services.savings import insert_goal
from ledger_api.services.transactions import insert_transaction

logger = logging.getLogger(__name__)

SAVEPOINT = "sync_record"


@dataclass(frozen=True)
class SyncOutcome:
    kind: str
    index: int
    ok: bool
    record_id: int | None = None
    error: str | None = None


@dataclass(frozen=True)
class SyncResult:
    outcomes: tuple[SyncOutcome, ...]

    @property
    def records_synced(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.ok)

    @property
    def conflicts_resolved(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.ok)

    def failures(self) -> list[SyncOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]


def _insert_transaction_record(cur, user_id: str, record: TransactionFields) -> int:
    return insert_transaction(cur, user_id, record)


def _insert_budget_record(cur, user_id: str, record: SyncBudgetRecord) -> int:
    return insert_budget(cur, user_id, record, created_at=record.created_at, updated_at=record.updated_at)


def _insert_goal_record(cur, user_id: str, record: SyncGoalRecord) -> int:
    return insert_goal(cur, user_id, record, created_at=record.created_at, updated_at=record.updated_at)


RECORD_HANDLERS: dict[str, tuple[type[BaseModel], Callable[[Any, str, Any], int]]] = {
    "transaction": (TransactionFields, _insert_transaction_record),
    "budget": (SyncBudgetRecord, _insert_budget_record),
    "goal": (SyncGoalRecord, _insert_goal_record),
}


def store_rejection_reason(exc: psycopg.Error) -> str:
    if isinstance(exc, UniqueViolation):
        return "Duplicate record"
    return "Rejected by database"


def apply_record(cur, user_id: str, kind: str, index: int, raw: Any) -> SyncOutcome:
    model, insert = RECORD_HANDLERS[kind]
    try:
        record = model.model_validate(raw)
    except SchemaError as exc:
        reason = describe_errors(exc.errors())
        logger.warning("Sync %s #%d skipped: %s", kind, index, reason)
        return SyncOutcome(kind=kind, index=index, ok=False, error=reason)

    cur.execute(f"SAVEPOINT {SAVEPOINT}")
    try:
        record_id = insert(cur, user_id, record)
    except psycopg.Error as exc:
        cur.execute(f"ROLLBACK TO SAVEPOINT {SAVEPOINT}")
        logger.warning("Sync %s #%d rejected by database: %s", kind, index, exc)
        return SyncOutcome(kind=kind, index=index, ok=False, error=store_rejection_reason(exc))
    cur.execute(f"RELEASE SAVEPOINT {SAVEPOINT}")
    return SyncOutcome(kind=kind, index=index, ok=True, record_id=record_id)


def sync_batch(cur, payload: SyncUploadRequest) -> SyncResult:
    batches = (
        ("transaction", payload.transactions),
        ("budget", payload.budgets),
        ("goal", payload.goals),
    )
    result = SyncResult(
        outcomes=tuple(
            apply_record(cur, payload.user_id, kind, index, raw)
            for kind, records in batches
            for index, raw in enumerate(records)
        )
    )
    logger.info(
        "Sync for %s: %d synced, %d conflicts (client last sync %s)",
        payload.user_id,
        result.records_synced,
        result.conflicts_resolved,
        payload.last_sync_time,
    )
    return result
