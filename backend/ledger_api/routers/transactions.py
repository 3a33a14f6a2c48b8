from fastapi import APIRouter, Depends

from ledger_api.db.pool import LedgerStore
from ledger_api.models.ledger import OwnerRequest, TransactionCreateRequest
from ledger_api.routers.deps import get_store
from ledger_api.services.reports import balance_summary
from ledger_api.services.transactions import (
    create_transaction,
    delete_transaction,
    get_transaction,
    list_transactions,
)

router = APIRouter(prefix="/api/transactions", tags=["transactions"])


@router.get("/summary/{user_id}")
def transactions_summary(user_id: str, store: LedgerStore = Depends(get_store)):
    with store.read_unit() as cur:
        return balance_summary(cur, user_id)


@router.get("/details/{transaction_id}")
def transaction_details(transaction_id: int, user_id: str, store: LedgerStore = Depends(get_store)):
    with store.read_unit() as cur:
        return get_transaction(cur, transaction_id, user_id)


@router.get("/{user_id}")
def transactions_for_user(user_id: str, store: LedgerStore = Depends(get_store)):
    with store.read_unit() as cur:
        return list_transactions(cur, user_id)


@router.post("", status_code=201)
def create_tx(payload: TransactionCreateRequest, store: LedgerStore = Depends(get_store)):
    with store.write_unit() as cur:
        return create_transaction(cur, payload)


@router.delete("/{transaction_id}")
def delete_tx(transaction_id: int, payload: OwnerRequest, store: LedgerStore = Depends(get_store)):
    with store.write_unit() as cur:
        delete_transaction(cur, transaction_id, payload.user_id)
    return {"message": "Transaction deleted successfully"}
