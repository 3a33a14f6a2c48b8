from fastapi import APIRouter, Depends

from ledger_api.db.pool import LedgerStore
from ledger_api.models.ledger import BudgetCreateRequest, BudgetUpdateRequest, OwnerRequest, Period
from ledger_api.routers.deps import get_store
from ledger_api.services.budgets import create_budget, delete_budget, get_budget, list_budgets, update_budget
from ledger_api.services.reports import budget_progress, budget_summary

router = APIRouter(prefix="/api/budgets", tags=["budgets"])


@router.get("/summary/{user_id}")
def budgets_summary(user_id: str, store: LedgerStore = Depends(get_store)):
    with store.read_unit() as cur:
        return budget_summary(cur, user_id)


@router.get("/progress/{user_id}")
def budgets_progress(user_id: str, period: Period = "monthly", store: LedgerStore = Depends(get_store)):
    with store.read_unit() as cur:
        return budget_progress(cur, user_id, period)


@router.get("/details/{budget_id}")
def budget_details(budget_id: int, user_id: str, store: LedgerStore = Depends(get_store)):
    with store.read_unit() as cur:
        return get_budget(cur, budget_id, user_id)


@router.get("/{user_id}")
def budgets_for_user(user_id: str, store: LedgerStore = Depends(get_store)):
    with store.read_unit() as cur:
        return list_budgets(cur, user_id)


@router.post("", status_code=201)
def create(payload: BudgetCreateRequest, store: LedgerStore = Depends(get_store)):
    with store.write_unit() as cur:
        return create_budget(cur, payload)


@router.put("/{budget_id}")
def update(budget_id: int, payload: BudgetUpdateRequest, store: LedgerStore = Depends(get_store)):
    with store.write_unit() as cur:
        return update_budget(cur, budget_id, payload)


@router.delete("/{budget_id}")
def delete(budget_id: int, payload: OwnerRequest, store: LedgerStore = Depends(get_store)):
    with store.write_unit() as cur:
        delete_budget(cur, budget_id, payload.user_id)
    return {"message": "Budget deleted successfully"}
