from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Literal

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StringConstraints,
    ValidationInfo,
    field_validator,
)

from ledger_api.services.common import ZERO, parse_amount, parse_calendar_date, parse_timestamp


def _money(value: Any, info: ValidationInfo) -> Decimal:
    return parse_amount(value, info.field_name or "amount")


def _calendar_date(value: Any, info: ValidationInfo) -> date:
    return parse_calendar_date(value, info.field_name or "date")


def _timestamp(value: Any, info: ValidationInfo) -> datetime:
    return parse_timestamp(value, info.field_name or "created_at")


def _positive(value: Decimal, info: ValidationInfo) -> Decimal:
    if value <= 0:
        raise ValueError(f"{info.field_name} must be greater than 0")
    return value


def _non_negative(value: Decimal, info: ValidationInfo) -> Decimal:
    if value < 0:
        raise ValueError(f"{info.field_name} must be 0 or greater")
    return value


def _non_zero(value: Decimal) -> Decimal:
    if value == 0:
        raise ValueError("Valid amount is required")
    return value


NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
Money = Annotated[Decimal, BeforeValidator(_money)]
PositiveMoney = Annotated[Decimal, BeforeValidator(_money), AfterValidator(_positive)]
NonNegativeMoney = Annotated[Decimal, BeforeValidator(_money), AfterValidator(_non_negative)]
CalendarDate = Annotated[date, BeforeValidator(_calendar_date)]
Timestamp = Annotated[datetime, BeforeValidator(_timestamp)]
Period = Literal["weekly", "monthly", "yearly"]


class OwnerRequest(BaseModel):
    user_id: NonEmptyStr


class TransactionFields(BaseModel):
    title: NonEmptyStr
    amount: Money
    category: NonEmptyStr
    created_at: Timestamp | None = None


class TransactionCreateRequest(TransactionFields):
    user_id: NonEmptyStr


class BudgetFields(BaseModel):
    category: NonEmptyStr
    amount: PositiveMoney
    period: Period = "monthly"

    @field_validator("period", mode="before")
    @classmethod
    def default_period(cls, value: Any) -> Any:
        return "monthly" if value is None else value


class BudgetCreateRequest(BudgetFields):
    user_id: NonEmptyStr


class BudgetUpdateRequest(BaseModel):
    user_id: NonEmptyStr
    category: NonEmptyStr | None = None
    amount: PositiveMoney | None = None
    period: Period | None = None


class GoalFields(BaseModel):
    title: NonEmptyStr
    target_amount: PositiveMoney
    current_amount: NonNegativeMoney = ZERO
    icon: NonEmptyStr = "target"
    target_date: CalendarDate | None = None

    @field_validator("current_amount", "icon", mode="before")
    @classmethod
    def fill_defaults(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return ZERO if info.field_name == "current_amount" else "target"
        return value


class SavingsGoalCreateRequest(GoalFields):
    user_id: NonEmptyStr


class SavingsGoalUpdateRequest(BaseModel):
    user_id: NonEmptyStr
    title: NonEmptyStr | None = None
    target_amount: PositiveMoney | None = None
    current_amount: NonNegativeMoney | None = None
    icon: NonEmptyStr | None = None
    target_date: CalendarDate | None = None


class AddMoneyRequest(BaseModel):
    user_id: NonEmptyStr
    amount: Annotated[Decimal, BeforeValidator(_money), AfterValidator(_non_zero)]


class SyncBudgetRecord(BudgetFields):
    created_at: Timestamp | None = None
    updated_at: Timestamp | None = None


class SyncGoalRecord(GoalFields):
    created_at: Timestamp | None = None
    updated_at: Timestamp | None = None


class SyncUploadRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: NonEmptyStr = Field(alias="userId")
    last_sync_time: str | None = Field(default=None, alias="lastSyncTime")
    # Records stay unparsed here so one malformed item cannot reject the batch.
    transactions: list[Any] = Field(default_factory=list)
    budgets: list[Any] = Field(default_factory=list)
    goals: list[Any] = Field(default_factory=list)

    @field_validator("transactions", "budgets", "goals", mode="before")
    @classmethod
    def null_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class SyncFailure(BaseModel):
    kind: str
    index: int
    error: str


class SyncUploadResponse(BaseModel):
    success: bool = True
    message: str = "Sync completed successfully"
    recordsSynced: int
    conflictsResolved: int
    lastSyncTime: str | None = None
    failures: list[SyncFailure] = Field(default_factory=list)


def describe_errors(errors: list[dict[str, Any]]) -> str:
    if not errors:
        return "Invalid request"
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
    msg = str(first.get("msg") or "Invalid value")
    if msg.startswith("Value error, "):
        return msg[len("Value error, "):]
    return f"{field}: {msg}" if field else msg
