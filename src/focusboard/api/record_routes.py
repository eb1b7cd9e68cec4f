"""
REST record service backed by a SqliteRecordStore.

Lets several devices share one record store over HTTP; HttpRecordStore is
the matching client.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel

from focusboard.store.http_store import record_to_wire
from focusboard.store.record_store import SYNC_TYPES, Record, RecordStoreError

_WHERE_PREFIX = "where."


class LookupBody(BaseModel):
    ids: List[str]


class WireRecord(BaseModel):
    recordId: str
    fields: Dict[str, Any] = {}


class ModifyBody(BaseModel):
    save: List[WireRecord] = []
    delete: List[str] = []


def _check_kind(kind: str) -> None:
    if kind not in SYNC_TYPES:
        raise HTTPException(status_code=404, detail=f"Unknown record kind '{kind}'")


def register_record_routes(app_router: APIRouter, records) -> None:
    """Attach /records routes serving the given SqliteRecordStore."""

    @app_router.get("/records/status")
    def get_status():
        return {"status": records.account_status().value}

    @app_router.get("/records/{kind}")
    def query_records(
        kind: str,
        request: Request,
        cursor: Optional[str] = Query(None),
        limit: int = Query(100),
    ):
        _check_kind(kind)
        filters = {
            key[len(_WHERE_PREFIX):]: value
            for key, value in request.query_params.items()
            if key.startswith(_WHERE_PREFIX)
        }
        try:
            page, next_cursor = records.query_page(kind, filters, cursor, limit)
        except RecordStoreError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {"records": [record_to_wire(r) for r in page], "cursor": next_cursor}

    @app_router.post("/records/{kind}/lookup")
    def lookup_records(kind: str, body: LookupBody):
        _check_kind(kind)
        return {"records": [record_to_wire(r) for r in records.lookup(kind, body.ids)]}

    @app_router.post("/records/{kind}/modify")
    def modify_records(kind: str, body: ModifyBody):
        _check_kind(kind)
        to_save = [Record(kind=kind, record_id=r.recordId, fields=r.fields) for r in body.save]
        try:
            errors = records.modify(kind, to_save, body.delete)
        except RecordStoreError as e:
            raise HTTPException(status_code=413, detail=str(e))
        return {"errors": errors}
