"""Supabase persistence for profiles, saved queries, query history and stored log lines.

Talks to Supabase's PostgREST endpoint (``/rest/v1``) with the service role key.
The tables are assumed to exist; this module only reads and writes rows.
"""

import httpx
from cloudwatch_interface_server.errors import StoreError
from cloudwatch_interface_server.supabase.models import (
    LogIngestionResult,
    LogRecordInput,
    ProfileRecord,
    QueryHistoryInput,
    QueryHistoryRecord,
    QueryHistoryUpdate,
    SavedQueryInput,
    SavedQueryRecord,
)
from datetime import datetime, timedelta, timezone
from loguru import logger
from typing import Any, Dict, List, Optional


DEFAULT_HISTORY_LIMIT = 20
MAX_HISTORY_LIMIT = 100


def service_role_headers(service_role_key: str) -> Dict[str, str]:
    return {
        'apikey': service_role_key,
        'Authorization': f'Bearer {service_role_key}',
        'Content-Type': 'application/json',
    }


class SupabaseRepository:
    """CRUD over the Supabase tables, keyed by owner identity.

    Also acts as the query history recorder for ``run_query_with_history``.
    """

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    @classmethod
    def from_service_role(cls, url: str, service_role_key: str, timeout: float = 30.0):
        client = httpx.AsyncClient(
            base_url=f'{url.rstrip("/")}/rest/v1',
            headers=service_role_headers(service_role_key),
            timeout=timeout,
        )
        return cls(client)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _request(
        self,
        method: str,
        table: str,
        message: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        return_rows: bool = True,
    ) -> List[Dict[str, Any]]:
        headers = {'Prefer': 'return=representation'} if return_rows else {}
        response = await self.client.request(
            method, f'/{table}', params=params, json=json, headers=headers
        )
        if response.is_error:
            detail = _error_detail(response)
            logger.error(f'{message}: {detail}')
            raise StoreError(f'{message}: {detail}', status_code=response.status_code)

        if not return_rows or not response.content:
            return []
        data = response.json()
        return data if isinstance(data, list) else [data]

    async def _single(self, method: str, table: str, message: str, **kwargs) -> Dict[str, Any]:
        rows = await self._request(method, table, message, **kwargs)
        if not rows:
            raise StoreError(message)
        return rows[0]

    async def get_profile_by_id(self, profile_id: str) -> ProfileRecord:
        row = await self._single(
            'GET',
            'profiles',
            f'Profile {profile_id} not found',
            params={'select': '*', 'id': f'eq.{profile_id}', 'limit': 1},
        )
        return ProfileRecord.model_validate(row)

    async def create_query_history(self, payload: QueryHistoryInput) -> QueryHistoryRecord:
        row = await self._single(
            'POST',
            'query_history',
            'Failed to insert query_history record',
            json=payload.model_dump(mode='json'),
        )
        return QueryHistoryRecord.model_validate(row)

    async def update_query_history(
        self, history_id: str, updates: QueryHistoryUpdate
    ) -> QueryHistoryRecord:
        row = await self._single(
            'PATCH',
            'query_history',
            f'Failed to update query_history record {history_id}',
            params={'id': f'eq.{history_id}'},
            json=updates.model_dump(mode='json', exclude_none=True),
        )
        return QueryHistoryRecord.model_validate(row)

    async def list_query_history(
        self,
        user_id: str,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[QueryHistoryRecord]:
        """Newest-first history for a requester, one page at a time.

        ``limit`` is clamped to 1..100 (default 20) and ``offset`` to >= 0.
        """
        limit = min(max(limit if limit is not None else DEFAULT_HISTORY_LIMIT, 1), MAX_HISTORY_LIMIT)
        offset = max(offset or 0, 0)

        rows = await self._request(
            'GET',
            'query_history',
            f'Failed to list query history for user {user_id}',
            params={
                'select': '*',
                'requester_id': f'eq.{user_id}',
                'order': 'created_at.desc',
                'limit': limit,
                'offset': offset,
            },
        )
        return [QueryHistoryRecord.model_validate(row) for row in rows]

    async def create_saved_query(self, payload: SavedQueryInput) -> SavedQueryRecord:
        row = await self._single(
            'POST',
            'saved_queries',
            'Failed to insert saved query',
            json=payload.model_dump(mode='json'),
        )
        return SavedQueryRecord.model_validate(row)

    async def list_saved_queries(self, user_id: str) -> List[SavedQueryRecord]:
        rows = await self._request(
            'GET',
            'saved_queries',
            f'Failed to list saved queries for user {user_id}',
            params={'select': '*', 'user_id': f'eq.{user_id}', 'order': 'created_at.desc'},
        )
        return [SavedQueryRecord.model_validate(row) for row in rows]

    async def delete_saved_query(self, saved_query_id: str, user_id: str) -> None:
        await self._request(
            'DELETE',
            'saved_queries',
            f'Failed to delete saved query {saved_query_id}',
            params={'id': f'eq.{saved_query_id}', 'user_id': f'eq.{user_id}'},
            return_rows=False,
        )

    async def insert_log_records(
        self,
        records: List[LogRecordInput],
        retention_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> LogIngestionResult:
        """Store log lines, dropping duplicates within the batch.

        Lines are duplicates when log group, timestamp and message all match.
        With ``retention_days`` set, rows older than that many days are
        purged after the insert.
        """
        if not records:
            return LogIngestionResult()

        rows = deduplicate_log_records(records)
        await self._request(
            'POST',
            'cloudwatch_logs',
            'Failed to insert cloudwatch logs',
            json=rows,
            return_rows=False,
        )
        logger.info(f'Inserted {len(rows)} log records ({len(records) - len(rows)} duplicates dropped)')

        deleted_old_count = 0
        if retention_days is not None:
            now = now or datetime.now(timezone.utc)
            deleted_old_count = await self.purge_logs_before(now - timedelta(days=retention_days))

        return LogIngestionResult(
            inserted_count=len(rows),
            deduplicated_count=len(records) - len(rows),
            deleted_old_count=deleted_old_count,
        )

    async def purge_logs_before(self, cutoff: datetime) -> int:
        """Delete stored log lines older than ``cutoff`` and return how many went."""
        iso_cutoff = _utc_isoformat(cutoff)
        rows = await self._request(
            'DELETE',
            'cloudwatch_logs',
            f'Failed to purge cloudwatch logs before {iso_cutoff}',
            params={'timestamp': f'lt.{iso_cutoff}', 'select': 'id'},
        )
        return len(rows)


def deduplicate_log_records(records: List[LogRecordInput]) -> List[Dict[str, Any]]:
    """Map log lines to cloudwatch_logs rows, keeping the first of each duplicate."""
    rows = {}
    for record in records:
        row = {
            'log_group': record.log_group,
            'timestamp': _utc_isoformat(record.timestamp),
            'message': record.message,
            'ingestion_label': record.ingestion_label,
            'metadata': record.metadata,
        }
        rows.setdefault((row['log_group'], row['timestamp'], row['message']), row)
    return list(rows.values())


def _utc_isoformat(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f'HTTP {response.status_code}'
    if isinstance(body, dict):
        return body.get('message') or body.get('error') or str(body)
    return str(body)
