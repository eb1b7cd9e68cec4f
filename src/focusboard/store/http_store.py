"""
HTTP record store client.

Talks to a record service exposing the /api/records endpoints (see
api/record_routes.py). Wire format for a record:

    {"recordId": "...", "fields": {...}, "modifiedAt": "...", "createdAt": "..."}

Query filters travel as ``where.<field>=<value>`` parameters, so only
string-valued fields can be filtered on.
"""

import logging
from typing import Dict, List, Optional, Tuple

import requests

from focusboard.store.record_store import (
    AccountStatus,
    Record,
    RecordStoreClient,
    RecordStoreError,
)
from focusboard.utils.dates import parse_iso

log = logging.getLogger(__name__)


def record_to_wire(record: Record) -> dict:
    return {
        "recordId": record.record_id,
        "fields": record.fields,
        "modifiedAt": record.modified_at.isoformat() if record.modified_at else None,
        "createdAt": record.created_at.isoformat() if record.created_at else None,
    }


def record_from_wire(kind: str, data: dict) -> Record:
    return Record(
        kind=kind,
        record_id=str(data["recordId"]),
        fields=dict(data.get("fields") or {}),
        modified_at=parse_iso(data.get("modifiedAt")),
        created_at=parse_iso(data.get("createdAt")),
    )


class HttpRecordStore(RecordStoreClient):
    """
    Record store reached over HTTP.

    Args:
        base_url: service root, e.g. "http://sync-host:9410"
        session: object with the requests.Session get/post surface
        timeout: per-request timeout in seconds
        token: optional bearer token forwarded as-is
    """

    def __init__(
        self,
        base_url: str,
        session=None,
        timeout: float = 10.0,
        token: Optional[str] = None,
        page_size: int = 100,
        batch_size: int = 400,
    ) -> None:
        super().__init__(page_size=page_size, batch_size=batch_size)
        self._base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._timeout = timeout
        self._headers = {"Authorization": f"Bearer {token}"} if token else {}

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, **kwargs) -> dict:
        url = f"{self._base_url}{path}"
        try:
            resp = getattr(self._session, method)(
                url, headers=self._headers, timeout=self._timeout, **kwargs
            )
        except requests.RequestException as exc:
            raise RecordStoreError(f"Cannot reach record store at {self._base_url}: {exc}") from exc

        if resp.status_code >= 400:
            raise RecordStoreError(f"Record store returned HTTP {resp.status_code}: {resp.text}")
        try:
            return resp.json()
        except ValueError as exc:
            raise RecordStoreError(f"Record store returned invalid JSON: {exc}") from exc

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    def account_status(self) -> AccountStatus:
        data = self._request("get", "/api/records/status")
        try:
            return AccountStatus(data.get("status"))
        except ValueError:
            log.warning("Unknown account status from record store: %r", data.get("status"))
            return AccountStatus.COULD_NOT_DETERMINE

    def _query_page(
        self,
        kind: str,
        filters: Dict[str, object],
        cursor: Optional[str],
        limit: int,
    ) -> Tuple[List[Record], Optional[str]]:
        params = {"limit": limit}
        if cursor:
            params["cursor"] = cursor
        for name, value in filters.items():
            params[f"where.{name}"] = str(value)

        data = self._request("get", f"/api/records/{kind}", params=params)
        try:
            records = [record_from_wire(kind, item) for item in data.get("records", [])]
        except (KeyError, TypeError, ValueError) as exc:
            raise RecordStoreError(f"Malformed query page for {kind}: {exc}") from exc
        return records, data.get("cursor")

    def _lookup(self, kind: str, record_ids: List[str]) -> List[Record]:
        data = self._request("post", f"/api/records/{kind}/lookup", json={"ids": record_ids})
        try:
            return [record_from_wire(kind, item) for item in data.get("records", [])]
        except (KeyError, TypeError, ValueError) as exc:
            raise RecordStoreError(f"Malformed lookup response for {kind}: {exc}") from exc

    def _modify(
        self,
        kind: str,
        records_to_save: List[Record],
        ids_to_delete: List[str],
    ) -> Dict[str, str]:
        body = {
            "save": [{"recordId": r.record_id, "fields": r.fields} for r in records_to_save],
            "delete": list(ids_to_delete),
        }
        data = self._request("post", f"/api/records/{kind}/modify", json=body)
        return {str(k): str(v) for k, v in (data.get("errors") or {}).items()}
