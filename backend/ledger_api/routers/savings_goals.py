from fastapi import APIRouter, Depends

from ledger_api.db.pool import LedgerStore
from ledger_api.models.ledger import (
    AddMoneyRequest,
    OwnerRequest,
    SavingsGoalCreateRequest,
    SavingsGoalUpdateRequest,
)
from ledger_api.routers.deps import get_store
from ledger_api.services.reports import savings_summary
from ledger_api.services.savings import (
    add_money_to_goal,
    create_goal,
    delete_goal,
    get_goal,
    list_goals,
    update_goal,
)

router = APIRouter(prefix="/api/savings-goals", tags=["savings-goals"])


@router.get("/summary/{user_id}")
def goals_summary(user_id: str, store: LedgerStore = Depends(get_store)):
    with store.read_unit() as cur:
        return savings_summary(cur, user_id)


@router.get("/details/{goal_id}")
def goal_details(goal_id: int, user_id: str, store: LedgerStore = Depends(get_store)):
    with store.read_unit() as cur:
        return get_goal(cur, goal_id, user_id)


@router.get("/{user_id}")
def goals_for_user(user_id: str, store: LedgerStore = Depends(get_store)):
    with store.read_unit() as cur:
        return list_goals(cur, user_id)


@router.post("", status_code=201)
def create(payload: SavingsGoalCreateRequest, store: LedgerStore = Depends(get_store)):
    with store.write_unit() as cur:
        return create_goal(cur, payload)


@router.put("/{goal_id}")
def update(goal_id: int, payload: SavingsGoalUpdateRequest, store: LedgerStore = Depends(get_store)):
    with store.write_unit() as cur:
        return update_goal(cur, goal_id, payload)


@router.patch("/{goal_id}/add-money")
def add_money(goal_id: int, payload: AddMoneyRequest, store: LedgerStore = Depends(get_store)):
    with store.write_unit() as cur:
        return add_money_to_goal(cur, goal_id, payload)


@router.delete("/{goal_id}")
def delete(goal_id: int, payload: OwnerRequest, store: LedgerStore = Depends(get_store)):
    with store.write_unit() as cur:
        delete_goal(cur, goal_id, payload.user_id)
    return {"message": "Savings goal deleted successfully"}
