import pathlib
import sys
import unittest
from decimal import Decimal

BACKEND_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from psycopg.errors import UniqueViolation

from ledger_api.core.errors import ConflictError, NotFoundError, StoreError, ValidationError
from ledger_api.models.ledger import (
    AddMoneyRequest,
    BudgetCreateRequest,
    BudgetUpdateRequest,
    SavingsGoalUpdateRequest,
    TransactionCreateRequest,
)
from ledger_api.services.budgets import create_budget, delete_budget, update_budget
from ledger_api.services.savings import add_money_to_goal, update_goal
from ledger_api.services.transactions import create_transaction, delete_transaction


class ScriptedCursor:
    """Replays one scripted result per ``execute`` call.

    A scripted exception is raised from ``execute``; anything else is what the
    following ``fetchone``/``fetchall`` returns.
    """

    def __init__(self, results) -> None:
        self.results = list(results)
        self.calls: list[tuple[str, tuple | None]] = []
        self._current = None

    def execute(self, sql, params=None):
        self.calls.append((sql, params))
        result = self.results.pop(0) if self.results else None
        if isinstance(result, Exception):
            raise result
        self._current = result

    def fetchone(self):
        return self._current

    def fetchall(self):
        return self._current or []

    def statements(self) -> list[str]:
        return [" ".join(sql.split()) for sql, _ in self.calls]


BUDGET_ROW = {
    "id": 7,
    "user_id": "u1",
    "category": "Food",
    "amount": Decimal("500.00"),
    "period": "monthly",
    "created_at": None,
    "updated_at": None,
}


class TransactionWriteTests(unittest.TestCase):
    def test_create_returns_the_row_read_back_after_insert(self):
        stored = {"id": 11, "user_id": "u1", "title": "Lunch", "amount": Decimal("-12.50"), "category": "Food"}
        cur = ScriptedCursor([{"id": 11}, stored])
        payload = TransactionCreateRequest(user_id="u1", title="Lunch", amount="-12.5", category="Food")

        row = create_transaction(cur, payload)

        self.assertEqual(row, stored)
        insert_sql, insert_params = cur.calls[0]
        self.assertIn("RETURNING id", insert_sql)
        self.assertEqual(insert_params, ("u1", "Lunch", Decimal("-12.50"), "Food", None))
        self.assertEqual(cur.calls[1][1], (11,))

    def test_create_fails_when_row_cannot_be_read_back(self):
        cur = ScriptedCursor([{"id": 11}, None])
        payload = TransactionCreateRequest(user_id="u1", title="Lunch", amount=5, category="Food")

        with self.assertRaises(StoreError):
            create_transaction(cur, payload)

    def test_delete_by_another_owner_is_not_found(self):
        cur = ScriptedCursor([None])

        with self.assertRaises(NotFoundError) as ctx:
            delete_transaction(cur, 11, "intruder")

        self.assertEqual(ctx.exception.message, "Transaction not found")
        self.assertEqual(cur.calls[0][1], (11, "intruder"))


class BudgetWriteTests(unittest.TestCase):
    def test_duplicate_category_is_rejected_before_insert(self):
        cur = ScriptedCursor([{"?column?": 1}])
        payload = BudgetCreateRequest(user_id="u1", category="Food", amount=100)

        with self.assertRaises(ConflictError) as ctx:
            create_budget(cur, payload)

        self.assertEqual(ctx.exception.message, "Budget already exists for this category")
        self.assertEqual(len(cur.calls), 1)
        self.assertFalse(any("INSERT" in sql for sql in cur.statements()))

    def test_unique_violation_from_concurrent_create_maps_to_conflict(self):
        cur = ScriptedCursor([None, UniqueViolation("duplicate key value")])
        payload = BudgetCreateRequest(user_id="u1", category="Food", amount=100)

        with self.assertRaises(ConflictError):
            create_budget(cur, payload)

    def test_create_defaults_period_to_monthly(self):
        cur = ScriptedCursor([None, {"id": 7}, BUDGET_ROW])
        payload = BudgetCreateRequest(user_id="u1", category="Food", amount="500", period=None)

        row = create_budget(cur, payload)

        self.assertEqual(row["id"], 7)
        self.assertEqual(cur.calls[1][1][:4], ("u1", "Food", Decimal("500.00"), "monthly"))

    def test_partial_update_leaves_absent_fields_null_for_coalesce(self):
        cur = ScriptedCursor([{"id": 7}, BUDGET_ROW])
        payload = BudgetUpdateRequest(user_id="u1", amount=50)

        update_budget(cur, 7, payload)

        sql, params = cur.calls[0]
        self.assertIn("COALESCE(%s::text, category)", sql)
        self.assertIn("updated_at = now()", sql)
        self.assertEqual(params, (None, Decimal("50.00"), None, 7, "u1"))

    def test_empty_update_is_accepted(self):
        cur = ScriptedCursor([{"id": 7}, BUDGET_ROW])

        row = update_budget(cur, 7, BudgetUpdateRequest(user_id="u1"))

        self.assertEqual(row, BUDGET_ROW)
        self.assertEqual(cur.calls[0][1], (None, None, None, 7, "u1"))

    def test_update_of_missing_budget_is_not_found(self):
        cur = ScriptedCursor([None])

        with self.assertRaises(NotFoundError):
            update_budget(cur, 99, BudgetUpdateRequest(user_id="u1", category="Rent"))

        self.assertEqual(len(cur.calls), 1)

    def test_update_into_taken_category_is_conflict(self):
        cur = ScriptedCursor([UniqueViolation("duplicate key value")])

        with self.assertRaises(ConflictError):
            update_budget(cur, 7, BudgetUpdateRequest(user_id="u1", category="Rent"))

    def test_delete_requires_matching_owner(self):
        cur = ScriptedCursor([None])

        with self.assertRaises(NotFoundError) as ctx:
            delete_budget(cur, 7, "u2")

        self.assertEqual(ctx.exception.message, "Budget not found")


class SavingsGoalWriteTests(unittest.TestCase):
    def test_add_money_locks_the_row_before_writing(self):
        goal = {"id": 3, "current_amount": Decimal("30.00")}
        cur = ScriptedCursor([{"current_amount": Decimal("20.00")}, None, goal])

        row = add_money_to_goal(cur, 3, AddMoneyRequest(user_id="u1", amount="10"))

        statements = cur.statements()
        self.assertIn("FOR UPDATE", statements[0])
        self.assertTrue(statements[1].startswith("UPDATE savings_goals"))
        self.assertEqual(cur.calls[1][1], (Decimal("30.00"), 3, "u1"))
        self.assertEqual(row, goal)

    def test_add_money_accepts_a_withdrawal_within_the_saved_amount(self):
        cur = ScriptedCursor([{"current_amount": Decimal("20.00")}, None, {"id": 3}])

        add_money_to_goal(cur, 3, AddMoneyRequest(user_id="u1", amount="-20"))

        self.assertEqual(cur.calls[1][1][0], Decimal("0.00"))

    def test_add_money_rejects_withdrawal_below_zero(self):
        cur = ScriptedCursor([{"current_amount": Decimal("5.00")}])

        with self.assertRaises(ValidationError):
            add_money_to_goal(cur, 3, AddMoneyRequest(user_id="u1", amount="-5.01"))

        self.assertEqual(len(cur.calls), 1)

    def test_add_money_to_missing_goal_is_not_found(self):
        cur = ScriptedCursor([None])

        with self.assertRaises(NotFoundError) as ctx:
            add_money_to_goal(cur, 3, AddMoneyRequest(user_id="u1", amount=1))

        self.assertEqual(ctx.exception.message, "Savings goal not found")

    def test_goal_update_coalesces_every_optional_field(self):
        cur = ScriptedCursor([{"id": 3}, {"id": 3}])

        update_goal(cur, 3, SavingsGoalUpdateRequest(user_id="u1", title="Bike"))

        sql, params = cur.calls[0]
        self.assertIn("COALESCE(%s::date, target_date)", sql)
        self.assertEqual(params, ("Bike", None, None, None, None, 3, "u1"))


if __name__ == "__main__":
    unittest.main()
