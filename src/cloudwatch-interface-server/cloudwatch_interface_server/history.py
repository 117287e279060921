"""Record pending, run, finalize: query execution with an audit trail."""

import asyncio
from cloudwatch_interface_server.cloudwatch_logs.engine import CloudWatchQueryEngine
from cloudwatch_interface_server.cloudwatch_logs.models import (
    LogQueryRequest,
    LogQueryResult,
    LogQueryStatus,
    QueryExecutionOptions,
)
from cloudwatch_interface_server.errors import QueryTimeout
from cloudwatch_interface_server.supabase.models import (
    QueryHistoryInput,
    QueryHistoryRecord,
    QueryHistoryStatus,
    QueryHistoryUpdate,
    RequesterType,
)
from loguru import logger
from typing import Optional, Protocol, Tuple


class QueryHistoryRecorder(Protocol):
    async def create_query_history(self, payload: QueryHistoryInput) -> QueryHistoryRecord: ...

    async def update_query_history(
        self, history_id: str, updates: QueryHistoryUpdate
    ) -> QueryHistoryRecord: ...


async def run_query_with_history(
    engine: CloudWatchQueryEngine,
    recorder: QueryHistoryRecorder,
    request: LogQueryRequest,
    options: Optional[QueryExecutionOptions] = None,
    requester_type: RequesterType = 'user',
    requester_id: Optional[str] = None,
) -> Tuple[QueryHistoryRecord, LogQueryResult]:
    """Run a query, recording it as pending first and finalizing it afterwards.

    Any exception from the engine marks the history entry failed with the
    error message and is then re-raised unchanged. Task cancellation is
    recorded as "Query cancelled". A store failure while recording the error
    is logged and never replaces the original exception.
    """
    history = await recorder.create_query_history(
        QueryHistoryInput(
            requester_type=requester_type,
            requester_id=requester_id,
            log_group=request.log_group_name or '',
            query_string=request.query_string or '',
            status=QueryHistoryStatus.PENDING,
        )
    )

    try:
        result = await engine.run_query(request, options)
    except asyncio.CancelledError:
        logger.warning(f'Query for history {history.id} was cancelled')
        await _record_failure(recorder, history.id, 'Query cancelled')
        raise
    except Exception as e:
        logger.error(f'Query for history {history.id} failed: {str(e)}')
        await _record_failure(
            recorder,
            history.id,
            str(e),
            cloudwatch_query_id=e.query_id if isinstance(e, QueryTimeout) else None,
        )
        raise

    history = await recorder.update_query_history(
        history.id,
        QueryHistoryUpdate(
            status=QueryHistoryStatus.SUCCEEDED
            if result.status == LogQueryStatus.SUCCEEDED
            else QueryHistoryStatus.FAILED,
            result_row_count=len(result.records),
            cloudwatch_query_id=result.query_id,
        ),
    )
    return history, result


async def _record_failure(
    recorder: QueryHistoryRecorder,
    history_id: str,
    error_message: str,
    cloudwatch_query_id: Optional[str] = None,
) -> None:
    """Mark a history entry failed without masking the error that caused it."""
    try:
        await recorder.update_query_history(
            history_id,
            QueryHistoryUpdate(
                status=QueryHistoryStatus.FAILED,
                error_message=error_message,
                cloudwatch_query_id=cloudwatch_query_id,
            ),
        )
    except Exception as e:
        logger.error(f'Failed to record failure for history {history_id}: {str(e)}')
