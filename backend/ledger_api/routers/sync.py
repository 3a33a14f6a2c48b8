from fastapi import APIRouter, Depends

from ledger_api.db.pool import LedgerStore
from ledger_api.models.ledger import SyncFailure, SyncUploadRequest, SyncUploadResponse
from ledger_api.routers.deps import get_store
from ledger_api.services.sync import sync_batch

router = APIRouter(prefix="/api/sync", tags=["sync"])


@router.post("/upload", response_model=SyncUploadResponse)
def upload_sync_data(payload: SyncUploadRequest, store: LedgerStore = Depends(get_store)):
    with store.write_unit() as cur:
        result = sync_batch(cur, payload)
    return SyncUploadResponse(
        recordsSynced=result.records_synced,
        conflictsResolved=result.conflicts_resolved,
        lastSyncTime=payload.last_sync_time,
        failures=[
            SyncFailure(kind=outcome.kind, index=outcome.index, error=outcome.error or "")
            for outcome in result.failures()
        ],
    )
