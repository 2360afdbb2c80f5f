"""
RemoteStore backed by a PostgREST / Supabase project.

Talks to `<url>/rest/v1/<table>` with aiohttp. Upserts are POSTs with
`on_conflict=<key columns>` and `Prefer: resolution=merge-duplicates`;
every upsert sends the full row, so a write always replaces the previous
row for the key. Credits go through the server-side RPCs
`get_user_credits` and `deduct_credits(cost, action_type)`, which resolve
the user from the bearer token and perform the check-and-decrement
atomically in the database.

JSON artifact columns (payload) are stored as jsonb.

Error Mapping:
    - Connection errors, timeouts, HTTP 5xx -> RemoteStoreError(is_transient=True)
    - HTTP 401 / 403                        -> UnauthorizedError
    - Other HTTP 4xx                        -> RemoteStoreError
"""

import asyncio
from datetime import date
from typing import Any

import aiohttp

from tube_tracker.core.exceptions import RemoteStoreError, UnauthorizedError
from tube_tracker.core.logger import get_logger
from tube_tracker.core.models import CreditBalance, ReserveResult
from tube_tracker.remote.base import CacheEntry, RemoteStore, cache_table
from tube_tracker.utils import parse_iso, to_iso, utc_now

logger = get_logger(__name__)


class RestRemoteStore(RemoteStore):
    """
    PostgREST client implementing RemoteStore.

    Args:
        url: Project base URL, e.g. "https://abc.supabase.co".
        api_key: Project anon/service key, sent as `apikey`.
        access_token: Signed-in user's JWT. Row-level security and the
                      credit RPCs use it; defaults to the api key.
        session: Optional shared aiohttp session (left open by close()).
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        access_token: str | None = None,
        session: aiohttp.ClientSession | None = None,
        timeout_seconds: float = 30.0
    ) -> None:
        self._rest_url = f"{url.rstrip('/')}/rest/v1"
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
            "Content-Type": "application/json",
        }
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    def set_access_token(self, access_token: str) -> None:
        """Switch the bearer token after sign-in."""
        self._headers["Authorization"] = f"Bearer {access_token}"

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        json_body: Any = None,
        prefer: str | None = None
    ) -> Any:
        """
        Perform one PostgREST request and decode the JSON body.

        Returns:
            Decoded JSON, or None for empty bodies (return=minimal).

        Raises:
            RemoteStoreError: On any failure (is_transient set for connectivity).
            UnauthorizedError: On HTTP 401/403.
        """
        headers = dict(self._headers)
        if prefer:
            headers["Prefer"] = prefer
        url = f"{self._rest_url}/{path}"

        try:
            async with self._get_session().request(
                method, url, params=params, json=json_body, headers=headers
            ) as response:
                text = await response.text()
                if response.status in (401, 403):
                    raise UnauthorizedError(
                        f"Remote store refused {method} {path}: {response.status}",
                        details={"path": path, "status": response.status, "body": text[:200]}
                    )
                if response.status >= 400:
                    raise RemoteStoreError(
                        f"Remote store {method} {path} failed: {response.status}",
                        details={"path": path, "status": response.status, "body": text[:200]},
                        is_transient=response.status >= 500
                    )
                if not text:
                    return None
                return await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise RemoteStoreError(
                f"Cannot reach remote store: {e}",
                details={"path": path, "original_error": str(e)},
                is_transient=True
            ) from e
        except asyncio.TimeoutError as e:
            raise RemoteStoreError(
                f"Remote store {method} {path} timed out",
                details={"path": path},
                is_transient=True
            ) from e

    async def _upsert(self, table: str, rows: list[dict[str, Any]], on_conflict: str) -> None:
        await self._request(
            "POST",
            table,
            params={"on_conflict": on_conflict},
            json_body=rows,
            prefer="resolution=merge-duplicates,return=minimal"
        )

    # =========================================================================
    # Playlist ownership
    # =========================================================================

    async def list_user_playlists(self, user_id: str) -> list[dict[str, Any]]:
        rows = await self._request("GET", "user_playlists", params={
            "select": "*",
            "user_id": f"eq.{user_id}",
            "order": "last_accessed_at.desc",
        }) or []
        return [
            {
                "id": row["playlist_id"],
                "title": row.get("title") or "",
                "description": row.get("description") or "",
                "thumbnail_url": row.get("thumbnail_url") or "",
                "video_count": row.get("video_count") or 0,
                "last_accessed_at": row.get("last_accessed_at"),
            }
            for row in rows
        ]

    async def save_user_playlist(self, user_id: str, playlist: dict[str, Any]) -> None:
        await self._upsert("user_playlists", [{
            "user_id": user_id,
            "playlist_id": playlist["id"],
            "title": playlist.get("title"),
            "description": playlist.get("description"),
            "thumbnail_url": playlist.get("thumbnail_url"),
            "video_count": playlist.get("video_count", 0),
            "last_accessed_at": playlist.get("last_accessed_at"),
        }], on_conflict="user_id,playlist_id")

    async def delete_user_playlist(self, user_id: str, playlist_id: str) -> None:
        params = {"user_id": f"eq.{user_id}", "playlist_id": f"eq.{playlist_id}"}
        for table in ("user_progress", "user_notes", "user_playlists"):
            await self._request("DELETE", table, params=params, prefer="return=minimal")

    # =========================================================================
    # Progress
    # =========================================================================

    async def get_progress(self, user_id: str, playlist_id: str) -> list[dict[str, Any]]:
        rows = await self._request("GET", "user_progress", params={
            "select": "user_id,video_id,playlist_id,completed,updated_at",
            "user_id": f"eq.{user_id}",
            "playlist_id": f"eq.{playlist_id}",
        })
        return list(rows or [])

    async def upsert_progress(self, records: list[dict[str, Any]]) -> None:
        if records:
            await self._upsert(
                "user_progress",
                [dict(record) for record in records],
                on_conflict="user_id,video_id,playlist_id"
            )

    # =========================================================================
    # Per-user notes
    # =========================================================================

    async def get_user_notes(self, user_id: str, playlist_id: str) -> list[dict[str, Any]]:
        rows = await self._request("GET", "user_notes", params={
            "select": "payload",
            "user_id": f"eq.{user_id}",
            "playlist_id": f"eq.{playlist_id}",
        }) or []
        return [row["payload"] for row in rows]

    async def upsert_user_notes(self, user_id: str, notes: dict[str, Any]) -> None:
        row = {**notes, "user_id": user_id}
        await self._upsert("user_notes", [{
            "user_id": user_id,
            "video_id": row["video_id"],
            "playlist_id": row["playlist_id"],
            "payload": row,
            "created_at": row["created_at"],
        }], on_conflict="user_id,video_id,playlist_id")

    # =========================================================================
    # Generation cache
    # =========================================================================

    async def get_cached(self, kind: str, key: tuple[str, ...]) -> CacheEntry | None:
        table = cache_table(kind)
        params = {"select": "payload,cached_at", "limit": "1"}
        params.update({column: f"eq.{value}" for column, value in table.key_dict(key).items()})
        rows = await self._request("GET", table.name, params=params) or []
        if not rows:
            return None
        return CacheEntry(
            payload=rows[0]["payload"],
            cached_at=parse_iso(rows[0].get("cached_at")) or utc_now()
        )

    async def put_cached(self, kind: str, key: tuple[str, ...], payload: dict[str, Any]) -> None:
        table = cache_table(kind)
        row: dict[str, Any] = {
            **table.key_dict(key),
            "payload": payload,
            "cached_at": to_iso(utc_now()),
        }
        if table.name == "video_tests":
            row["score"] = payload.get("score")
        await self._upsert(table.name, [row], on_conflict=",".join(table.key_columns))

    # =========================================================================
    # Tests
    # =========================================================================

    async def get_test_results(self, user_id: str, playlist_id: str) -> list[dict[str, Any]]:
        rows = await self._request("GET", "video_tests", params={
            "select": "payload",
            "user_id": f"eq.{user_id}",
            "playlist_id": f"eq.{playlist_id}",
            "score": "not.is.null",
        }) or []
        return [row["payload"] for row in rows]

    async def save_test_result(self, record: dict[str, Any]) -> None:
        rows = await self._request(
            "PATCH",
            "video_tests",
            params={
                "user_id": f"eq.{record['user_id']}",
                "video_id": f"eq.{record['video_id']}",
                "playlist_id": f"eq.{record['playlist_id']}",
                "select": "video_id",
            },
            json_body={"payload": record, "score": record.get("score")},
            prefer="return=representation"
        )
        if not rows:
            raise RemoteStoreError(
                "No stored test to grade",
                details={"video_id": record["video_id"], "playlist_id": record["playlist_id"]}
            )

    # =========================================================================
    # Credits
    # =========================================================================

    async def get_credits(self, user_id: str) -> CreditBalance:
        data = await self._request("POST", "rpc/get_user_credits", json_body={})
        if isinstance(data, list):
            data = data[0] if data else {}
        data = data or {}
        bonus = data.get("last_daily_bonus_at")
        return CreditBalance(
            user_id=user_id,
            credits=int(data.get("credits") or 0),
            last_daily_bonus_at=date.fromisoformat(bonus[:10]) if bonus else None
        )

    async def reserve_credits(self, user_id: str, cost: int, action: str) -> ReserveResult:
        data = await self._request(
            "POST",
            "rpc/deduct_credits",
            json_body={"cost": cost, "action_type": action}
        )
        if not isinstance(data, dict) or "success" not in data:
            raise RemoteStoreError(
                "deduct_credits returned an unexpected payload",
                details={"action": action, "payload": str(data)[:200]}
            )
        return ReserveResult(
            success=bool(data["success"]),
            new_balance=int(data.get("new_credits") or 0),
            message=data.get("message") or ""
        )
