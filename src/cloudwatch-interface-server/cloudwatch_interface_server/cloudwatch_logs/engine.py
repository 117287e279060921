# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Logs Insights query execution: start, poll until terminal, normalize."""

import asyncio
from cloudwatch_interface_server.cloudwatch_logs.backend import LogsQueryBackend
from cloudwatch_interface_server.cloudwatch_logs.models import (
    LogGroupMetadata,
    LogGroupPage,
    LogQueryRequest,
    LogQueryResult,
    LogQueryResultField,
    LogQueryResultRecord,
    LogQueryStatus,
    QueryExecutionOptions,
)
from cloudwatch_interface_server.cloudwatch_logs.validator import (
    to_epoch_seconds,
    validate_query_request,
)
from cloudwatch_interface_server.errors import BackendProtocolError, QueryTimeout
from loguru import logger
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional


SleepFn = Callable[[float], Awaitable[None]]

# CloudWatch status -> canonical status. Anything not listed (including a
# missing status) is treated as scheduled and simply polled again.
STATUS_MAP = {
    'Scheduled': LogQueryStatus.SCHEDULED,
    'Running': LogQueryStatus.RUNNING,
    'Complete': LogQueryStatus.SUCCEEDED,
    'Failed': LogQueryStatus.FAILED,
    'Cancelled': LogQueryStatus.CANCELLED,
}


def normalize_status(status: Optional[str]) -> LogQueryStatus:
    """Map a CloudWatch query status onto LogQueryStatus."""
    return STATUS_MAP.get(status, LogQueryStatus.SCHEDULED)


def map_records(rows: Optional[Iterable[Any]]) -> List[LogQueryResultRecord]:
    """Map raw result rows into records, keeping field order.

    Missing rows become empty records and missing field names or values
    become empty strings.
    """
    records = []
    for row in rows or []:
        fields = []
        for cell in row or []:
            cell = cell or {}
            fields.append(
                LogQueryResultField(
                    field=cell.get('field') or '',
                    value=cell.get('value') or '',
                )
            )
        records.append(LogQueryResultRecord(fields=fields))
    return records


class CloudWatchQueryEngine:
    """Drives a Logs Insights query to a terminal result.

    The engine keeps no per-query state; the query id returned by
    ``start_query`` is the only handle needed for polling.
    """

    def __init__(self, backend: LogsQueryBackend, sleep: Optional[SleepFn] = None):
        self.backend = backend
        self._sleep = sleep or asyncio.sleep

    def validate(self, request: LogQueryRequest) -> None:
        validate_query_request(request)

    async def start_query(self, request: LogQueryRequest) -> str:
        """Validate the request and start it on CloudWatch.

        Returns:
            The CloudWatch query id

        Raises:
            InvalidRequest: if the request fails validation
            BackendProtocolError: if CloudWatch does not return a query id
        """
        validate_query_request(request)

        response = await self.backend.start(
            request.log_group_name,
            request.query_string,
            to_epoch_seconds(request.window.start_time),
            to_epoch_seconds(request.window.end_time),
            request.limit,
        )
        query_id = (response or {}).get('queryId')
        if not query_id:
            raise BackendProtocolError('CloudWatch did not return a queryId')

        logger.info(f'Started query with ID: {query_id}')
        return query_id

    async def poll_once(self, query_id: str) -> Dict[str, Any]:
        """Fetch the current status and results of a query once."""
        return await self.backend.poll(query_id)

    def to_result(self, query_id: str, response: Dict[str, Any]) -> LogQueryResult:
        response = response or {}
        return LogQueryResult(
            query_id=query_id,
            status=normalize_status(response.get('status')),
            records=map_records(response.get('results')),
            statistics=response.get('statistics'),
        )

    async def run_query(
        self,
        request: LogQueryRequest,
        options: Optional[QueryExecutionOptions] = None,
    ) -> LogQueryResult:
        """Start a query and poll until it reaches a terminal status.

        Raises:
            InvalidRequest: if the request fails validation
            BackendProtocolError: if CloudWatch does not return a query id
            QueryTimeout: if no terminal status is seen within max_poll_attempts polls
        """
        options = options or QueryExecutionOptions()
        query_id = await self.start_query(request)
        interval = options.poll_interval_ms / 1000

        for attempt in range(options.max_poll_attempts):
            response = await self.poll_once(query_id) or {}
            status = normalize_status(response.get('status'))

            if not status.is_terminal:
                logger.debug(
                    f'Query {query_id} is {status.value} (attempt {attempt + 1}/{options.max_poll_attempts})'
                )
                await self._sleep(interval)
                continue

            logger.info(f'Query {query_id} finished with status {response.get("status")}')
            return self.to_result(query_id, response)

        logger.warning(
            f'Query {query_id} did not complete after {options.max_poll_attempts} attempts'
        )
        raise QueryTimeout(query_id, options.max_poll_attempts)

    async def get_query_result(self, query_id: str) -> LogQueryResult:
        """Snapshot of a query; the status may still be scheduled or running."""
        response = await self.poll_once(query_id)
        logger.info(f'Retrieved results for query ID {query_id}')
        return self.to_result(query_id, response)

    async def cancel_query(self, query_id: str) -> bool:
        response = await self.backend.stop(query_id)
        return bool((response or {}).get('success'))

    async def list_log_groups(
        self,
        next_token: Optional[str] = None,
        name_prefix: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> LogGroupPage:
        response = await self.backend.list_log_groups(
            next_token=next_token, name_prefix=name_prefix, limit=limit
        )
        return LogGroupPage(
            log_groups=[
                LogGroupMetadata.model_validate(lg) for lg in response.get('logGroups', [])
            ],
            next_token=response.get('nextToken'),
        )
