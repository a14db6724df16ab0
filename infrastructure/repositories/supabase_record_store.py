import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

import requests

from infrastructure.change_feed import ChangeEvent, ChangeFeed, Subscription
from infrastructure.identity.supabase_identity_store import REQUEST_TIMEOUT, response_message
from use_cases.errors import StorageError

log = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


def _filter_value(value: Any) -> str:
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return f"eq.{'true' if value else 'false'}"
    return f"eq.{value}"


class SupabaseRecordStore:
    """
    Record store backed by the hosted PostgREST API.
    Writes made through this client are published on the local change feed,
    so every session served by this process sees them.
    """

    def __init__(self, url: str, api_key: str, change_feed: Optional[ChangeFeed] = None):
        self.base_url = url.rstrip("/") + "/rest/v1"
        self.api_key = api_key
        self.change_feed = change_feed or ChangeFeed()

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _params(self, filters: Optional[Dict[str, Any]]) -> Dict[str, str]:
        return {key: _filter_value(value) for key, value in (filters or {}).items()}

    def _raise_for(self, resp: requests.Response, action: str, table: str):
        try:
            code = (resp.json() or {}).get("code")
        except (ValueError, AttributeError):
            code = None
        message = response_message(resp, f"HTTP {resp.status_code}")
        raise StorageError(
            f"{action} {table} failed: {message}",
            conflict=resp.status_code == 409 or code == UNIQUE_VIOLATION,
        )

    def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        params = {"select": "*", **self._params(filters)}
        if order_by:
            params["order"] = f"{order_by}.{'desc' if descending else 'asc'}"
        if limit is not None:
            params["limit"] = str(int(limit))
        try:
            resp = requests.get(f"{self.base_url}/{table}", params=params, headers=self._headers(), timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            raise StorageError(f"Read {table} failed: {e}") from e
        if resp.status_code != 200:
            self._raise_for(resp, "Read", table)
        return resp.json()

    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        try:
            resp = requests.post(
                f"{self.base_url}/{table}",
                json=row,
                headers=self._headers(prefer="return=representation"),
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            raise StorageError(f"Insert into {table} failed: {e}") from e
        if resp.status_code not in (200, 201):
            self._raise_for(resp, "Insert into", table)
        created = resp.json()[0]
        self.change_feed.publish(ChangeEvent(table=table, event_type="INSERT", record=created))
        return created

    def update(self, table: str, filters: Dict[str, Any], changes: Dict[str, Any]) -> List[Dict[str, Any]]:
        if not filters:
            raise StorageError("Refusing to update without filters")
        try:
            resp = requests.patch(
                f"{self.base_url}/{table}",
                params=self._params(filters),
                json=changes,
                headers=self._headers(prefer="return=representation"),
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            raise StorageError(f"Update of {table} failed: {e}") from e
        if resp.status_code not in (200, 204):
            self._raise_for(resp, "Update of", table)
        updated = resp.json() if resp.status_code == 200 else []
        for record in updated:
            self.change_feed.publish(ChangeEvent(table=table, event_type="UPDATE", record=record))
        return updated

    def subscribe(
        self,
        table: str,
        events: Union[str, Iterable[str]],
        callback: Callable[[ChangeEvent], None],
    ) -> Subscription:
        return self.change_feed.subscribe(table, events, callback)
