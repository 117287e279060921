"""Tests for the MCP tools."""

import pytest
from cloudwatch_interface_server.cloudwatch_logs.engine import CloudWatchQueryEngine
from cloudwatch_interface_server.cloudwatch_logs.models import LogsQueryCancelResult
from cloudwatch_interface_server.cloudwatch_logs.tools import CloudWatchLogsTools, parse_iso8601
from cloudwatch_interface_server.errors import AuthenticationError, InvalidRequest
from cloudwatch_interface_server.query_library.tools import QueryLibraryTools
from cloudwatch_interface_server.services import Services
from cloudwatch_interface_server.supabase.models import SavedQueryRecord
from datetime import datetime, timezone
from tests.fakes import FakeBackend, make_auth_service, make_history, make_recorder
from unittest.mock import AsyncMock, MagicMock


def make_services(backend=None, repository=None, auth_service=None):
    return Services(
        engine=CloudWatchQueryEngine(backend or FakeBackend(), sleep=AsyncMock()),
        repository=repository or make_recorder(),
        auth_service=auth_service or make_auth_service(),
    )


@pytest.fixture
def ctx():
    return AsyncMock()


class TestParseIso8601:
    def test_trailing_z(self):
        assert parse_iso8601('2024-03-10T10:00:00Z', 'start_time') == datetime(
            2024, 3, 10, 10, tzinfo=timezone.utc
        )

    def test_offset(self):
        assert parse_iso8601('2024-03-10T12:00:00+02:00', 'start_time').utcoffset().seconds == 7200

    def test_invalid(self):
        with pytest.raises(InvalidRequest, match='end_time must be an ISO 8601 datetime'):
            parse_iso8601('yesterday', 'end_time')


class TestRunLogsInsightsQuery:
    @pytest.mark.asyncio
    async def test_success_is_recorded_as_agent(self, ctx):
        backend = FakeBackend(
            poll_responses=[
                {'status': 'Scheduled'},
                {'status': 'Complete', 'results': [[{'field': '@message', 'value': 'hi'}]]},
            ]
        )
        services = make_services(backend=backend)
        tools = CloudWatchLogsTools(services)

        result = await tools.run_logs_insights_query(
            ctx,
            access_token='token-1',
            log_group_name='/aws/lambda/example',
            query_string='fields @message',
            start_time='2024-03-10T10:00:00Z',
            end_time='2024-03-10T11:00:00Z',
            limit=5,
        )

        assert result['queryId'] == 'abc-123'
        assert result['status'] == 'succeeded'
        assert result['historyId'] == 'hist-1'
        assert result['records'] == [{'fields': [{'field': '@message', 'value': 'hi'}]}]
        assert backend.start_calls == [
            ('/aws/lambda/example', 'fields @message', 1710064800, 1710068400, 5)
        ]
        created = services.repository.create_query_history.await_args.args[0]
        assert created.requester_type == 'agent'
        assert created.requester_id == 'user-1'
        services.auth_service.get_user_from_access_token.assert_awaited_once_with('token-1')

    @pytest.mark.asyncio
    async def test_polling_timeout_returns_query_id(self, ctx):
        services = make_services(backend=FakeBackend(poll_responses=[{'status': 'Running'}]))
        tools = CloudWatchLogsTools(services)

        result = await tools.run_logs_insights_query(
            ctx,
            access_token='token-1',
            log_group_name='/aws/lambda/example',
            query_string='fields @message',
            start_time='2024-03-10T10:00:00Z',
            end_time='2024-03-10T11:00:00Z',
            max_poll_attempts=2,
        )

        assert result['queryId'] == 'abc-123'
        assert result['status'] == 'Polling Timeout'
        assert 'get_logs_insights_query_results' in result['message']
        ctx.warning.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_invalid_time_is_rejected_before_history(self, ctx):
        services = make_services()
        tools = CloudWatchLogsTools(services)

        with pytest.raises(InvalidRequest):
            await tools.run_logs_insights_query(
                ctx,
                access_token='token-1',
                log_group_name='/aws/lambda/example',
                query_string='fields @message',
                start_time='not-a-time',
                end_time='2024-03-10T11:00:00Z',
            )

        services.repository.create_query_history.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_untyped_arguments_become_invalid_request(self, ctx):
        services = make_services()
        tools = CloudWatchLogsTools(services)

        with pytest.raises(InvalidRequest, match='Invalid query arguments'):
            await tools.run_logs_insights_query(
                ctx,
                access_token='token-1',
                log_group_name='/aws/lambda/example',
                query_string='fields @message',
                start_time='2024-03-10T10:00:00Z',
                end_time='2024-03-10T11:00:00Z',
                limit='twenty',
            )

        services.repository.create_query_history.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unauthenticated(self, ctx):
        auth_service = make_auth_service()
        auth_service.get_user_from_access_token.side_effect = AuthenticationError('Token expired')
        backend = FakeBackend()
        tools = CloudWatchLogsTools(make_services(backend=backend, auth_service=auth_service))

        with pytest.raises(AuthenticationError):
            await tools.run_logs_insights_query(
                ctx,
                access_token='token-1',
                log_group_name='/aws/lambda/example',
                query_string='fields @message',
                start_time='2024-03-10T10:00:00Z',
                end_time='2024-03-10T11:00:00Z',
            )

        assert backend.start_calls == []


class TestOtherLogsTools:
    @pytest.mark.asyncio
    async def test_list_log_groups(self, ctx):
        backend = FakeBackend(
            log_groups_response={
                'logGroups': [{'logGroupName': '/aws/lambda/example', 'storedBytes': 10}],
                'nextToken': 'next',
            }
        )
        tools = CloudWatchLogsTools(make_services(backend=backend))

        result = await tools.list_log_groups(
            ctx, access_token='token-1', log_group_name_prefix='/aws/', max_items=10
        )

        assert result['nextToken'] == 'next'
        assert result['logGroups'][0]['storedBytes'] == 10
        assert backend.list_calls == [(None, '/aws/', 10)]

    @pytest.mark.asyncio
    async def test_get_results_snapshot(self, ctx):
        backend = FakeBackend(poll_responses=[{'status': 'Running', 'results': []}])
        tools = CloudWatchLogsTools(make_services(backend=backend))

        result = await tools.get_logs_insights_query_results(
            ctx, access_token='token-1', query_id='abc-123'
        )

        assert result['status'] == 'running'
        assert backend.poll_calls == ['abc-123']

    @pytest.mark.asyncio
    async def test_cancel(self, ctx):
        backend = FakeBackend()
        tools = CloudWatchLogsTools(make_services(backend=backend))

        result = await tools.cancel_logs_insights_query(
            ctx, access_token='token-1', query_id='abc-123'
        )

        assert result == LogsQueryCancelResult(success=True)
        assert backend.stop_calls == ['abc-123']

    def test_register(self):
        mcp = MagicMock()

        CloudWatchLogsTools(make_services()).register(mcp)

        names = [c.kwargs['name'] for c in mcp.tool.call_args_list]
        assert names == [
            'list_log_groups',
            'run_logs_insights_query',
            'get_logs_insights_query_results',
            'cancel_logs_insights_query',
        ]


class TestQueryLibraryTools:
    SAVED = SavedQueryRecord(
        id='saved-1',
        user_id='user-1',
        name='Errors',
        log_group='/aws/lambda/example',
        query_string='filter @message like /ERROR/',
    )

    @pytest.mark.asyncio
    async def test_save_query(self, ctx):
        repository = make_recorder()
        repository.create_saved_query.return_value = self.SAVED
        tools = QueryLibraryTools(make_services(repository=repository))

        result = await tools.save_query(
            ctx,
            access_token='token-1',
            name='Errors',
            log_group='/aws/lambda/example',
            query_string='filter @message like /ERROR/',
            tags=['errors'],
        )

        assert result['saved']['id'] == 'saved-1'
        payload = repository.create_saved_query.await_args.args[0]
        assert payload.user_id == 'user-1'
        assert payload.tags == ['errors']

    @pytest.mark.asyncio
    async def test_list_saved_queries(self, ctx):
        repository = make_recorder()
        repository.list_saved_queries.return_value = [self.SAVED]
        tools = QueryLibraryTools(make_services(repository=repository))

        result = await tools.list_saved_queries(ctx, access_token='token-1')

        assert [s['name'] for s in result['saved']] == ['Errors']

    @pytest.mark.asyncio
    async def test_delete_saved_query(self, ctx):
        repository = make_recorder()
        tools = QueryLibraryTools(make_services(repository=repository))

        assert await tools.delete_saved_query(ctx, access_token='token-1', id='saved-1') == 'Deleted'
        repository.delete_saved_query.assert_awaited_once_with('saved-1', 'user-1')

    @pytest.mark.asyncio
    async def test_list_query_history(self, ctx):
        repository = make_recorder()
        repository.list_query_history.return_value = [make_history()]
        tools = QueryLibraryTools(make_services(repository=repository))

        result = await tools.list_query_history(ctx, access_token='token-1', limit=5)

        assert result['history'][0]['status'] == 'pending'
        repository.list_query_history.assert_awaited_once_with('user-1', limit=5, offset=None)

    def test_register(self):
        mcp = MagicMock()

        QueryLibraryTools(make_services()).register(mcp)

        names = [c.kwargs['name'] for c in mcp.tool.call_args_list]
        assert names == ['list_saved_queries', 'save_query', 'delete_saved_query', 'list_query_history']
