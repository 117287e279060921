"""Tests for running queries with a pending -> final history record."""

import asyncio
import pytest
from cloudwatch_interface_server.cloudwatch_logs.engine import CloudWatchQueryEngine
from cloudwatch_interface_server.cloudwatch_logs.models import QueryExecutionOptions
from cloudwatch_interface_server.errors import (
    BackendProtocolError,
    InvalidRequest,
    QueryTimeout,
    StoreError,
)
from cloudwatch_interface_server.history import run_query_with_history
from cloudwatch_interface_server.supabase.models import QueryHistoryStatus
from tests.fakes import FakeBackend, make_recorder
from unittest.mock import AsyncMock


ROWS = [[{'field': '@message', 'value': 'one'}], [{'field': '@message', 'value': 'two'}]]


class TestRunQueryWithHistory:
    @pytest.mark.asyncio
    async def test_records_pending_then_succeeded(self, base_request, sleep):
        recorder = make_recorder()
        engine = CloudWatchQueryEngine(
            FakeBackend(poll_responses=[{'status': 'Complete', 'results': ROWS}]), sleep=sleep
        )

        history, result = await run_query_with_history(
            engine, recorder, base_request, requester_type='agent', requester_id='user-1'
        )

        created = recorder.create_query_history.await_args.args[0]
        assert created.status is QueryHistoryStatus.PENDING
        assert created.requester_type == 'agent'
        assert created.requester_id == 'user-1'
        assert created.log_group == '/aws/lambda/example'

        history_id, update = recorder.update_query_history.await_args.args
        assert history_id == 'hist-1'
        assert update.status is QueryHistoryStatus.SUCCEEDED
        assert update.result_row_count == 2
        assert update.cloudwatch_query_id == 'abc-123'
        assert history.status is QueryHistoryStatus.SUCCEEDED
        assert result.query_id == 'abc-123'

    @pytest.mark.asyncio
    @pytest.mark.parametrize('raw_status', ['Failed', 'Cancelled'])
    async def test_non_successful_terminal_status_is_recorded_failed(
        self, base_request, sleep, raw_status
    ):
        recorder = make_recorder()
        engine = CloudWatchQueryEngine(FakeBackend(poll_responses=[{'status': raw_status}]), sleep=sleep)

        history, result = await run_query_with_history(engine, recorder, base_request)

        update = recorder.update_query_history.await_args.args[1]
        assert update.status is QueryHistoryStatus.FAILED
        assert update.result_row_count == 0
        assert update.error_message is None
        assert history.status is QueryHistoryStatus.FAILED

    @pytest.mark.asyncio
    async def test_timeout_is_recorded_with_query_id_and_reraised(self, base_request, sleep):
        recorder = make_recorder()
        engine = CloudWatchQueryEngine(FakeBackend(poll_responses=[{'status': 'Running'}]), sleep=sleep)

        with pytest.raises(QueryTimeout):
            await run_query_with_history(
                engine,
                recorder,
                base_request,
                QueryExecutionOptions(poll_interval_ms=1, max_poll_attempts=2),
            )

        update = recorder.update_query_history.await_args.args[1]
        assert update.status is QueryHistoryStatus.FAILED
        assert update.error_message == 'Query abc-123 did not complete after 2 attempts'
        assert update.cloudwatch_query_id == 'abc-123'

    @pytest.mark.asyncio
    async def test_invalid_request_is_recorded_failed(self, base_request):
        recorder = make_recorder()
        engine = CloudWatchQueryEngine(FakeBackend())
        request = base_request.model_copy(update={'query_string': ''})

        with pytest.raises(InvalidRequest):
            await run_query_with_history(engine, recorder, request)

        recorder.create_query_history.assert_awaited_once()
        update = recorder.update_query_history.await_args.args[1]
        assert update.status is QueryHistoryStatus.FAILED
        assert update.error_message == 'queryString is required'

    @pytest.mark.asyncio
    async def test_protocol_error_is_recorded_failed(self, base_request):
        recorder = make_recorder()
        engine = CloudWatchQueryEngine(FakeBackend(start_response={}))

        with pytest.raises(BackendProtocolError):
            await run_query_with_history(engine, recorder, base_request)

        update = recorder.update_query_history.await_args.args[1]
        assert update.status is QueryHistoryStatus.FAILED
        assert update.cloudwatch_query_id is None

    @pytest.mark.asyncio
    async def test_transport_errors_propagate_unchanged(self, base_request):
        recorder = make_recorder()
        backend = FakeBackend()
        error = ConnectionError('connection reset')

        async def broken_poll(query_id):
            raise error

        backend.poll = broken_poll
        engine = CloudWatchQueryEngine(backend)

        with pytest.raises(ConnectionError) as exc_info:
            await run_query_with_history(engine, recorder, base_request)

        assert exc_info.value is error
        assert recorder.update_query_history.await_args.args[1].error_message == 'connection reset'

    @pytest.mark.asyncio
    async def test_cancellation_is_recorded_failed_and_reraised(self, base_request):
        recorder = make_recorder()
        engine = CloudWatchQueryEngine(
            FakeBackend(poll_responses=[{'status': 'Running'}]),
            sleep=AsyncMock(side_effect=asyncio.CancelledError),
        )

        with pytest.raises(asyncio.CancelledError):
            await run_query_with_history(engine, recorder, base_request)

        assert recorder.update_query_history.await_count == 1
        update = recorder.update_query_history.await_args.args[1]
        assert update.status is QueryHistoryStatus.FAILED
        assert update.error_message == 'Query cancelled'

    @pytest.mark.asyncio
    async def test_store_failure_does_not_mask_engine_error(self, base_request):
        recorder = make_recorder()
        recorder.update_query_history.side_effect = StoreError('supabase down', status_code=503)
        engine = CloudWatchQueryEngine(FakeBackend(start_response={}))

        with pytest.raises(BackendProtocolError):
            await run_query_with_history(engine, recorder, base_request)

        recorder.update_query_history.assert_awaited_once()
