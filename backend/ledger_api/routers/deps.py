from fastapi import Request

from ledger_api.db.pool import LedgerStore


def get_store(request: Request) -> LedgerStore:
    return request.app.state.store
