"""REST API for the web app, served next to the MCP endpoint.

Every handler expects ``request.state.user`` to be set by SupabaseAuthMiddleware
and answers 401 when it is missing.
"""

import functools
from cloudwatch_interface_server.cloudwatch_logs.backend import remove_null_values
from cloudwatch_interface_server.cloudwatch_logs.models import (
    LogQueryRequest,
    LogQueryWindow,
    QueryExecutionOptions,
)
from cloudwatch_interface_server.errors import BackendProtocolError, InvalidRequest, QueryTimeout
from cloudwatch_interface_server.history import run_query_with_history
from cloudwatch_interface_server.services import Services
from cloudwatch_interface_server.supabase.models import SavedQueryInput
from datetime import datetime
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route
from typing import List, Optional


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LogQueryPayload(_Payload):
    log_group_name: str = Field(min_length=1)
    query_string: str = Field(min_length=1)
    start_time: datetime
    end_time: datetime
    limit: Optional[int] = Field(default=None, gt=0, le=10000)
    poll_interval_ms: Optional[int] = Field(default=None, gt=0, le=10000)
    max_poll_attempts: Optional[int] = Field(default=None, gt=0, le=100)


class SavedQueryPayload(_Payload):
    name: str = Field(min_length=1)
    log_group: str = Field(min_length=1)
    query_string: str = Field(min_length=1)
    description: Optional[str] = Field(default=None, max_length=512)
    tags: Optional[List[str]] = Field(default=None, max_length=10)


def error_response(message: str, status_code: int, **extra) -> JSONResponse:
    return JSONResponse({'error': message, **extra}, status_code=status_code)


async def _read_payload(request: Request, model):
    try:
        return model.model_validate(await request.json()), None
    except ValueError as e:
        return None, str(e)


def requires_user(handler):
    @functools.wraps(handler)
    async def wrapper(self, request: Request) -> JSONResponse:
        if getattr(request.state, 'user', None) is None:
            logger.warning(f'Unauthenticated request to {request.url.path}')
            return error_response('Missing bearer token', 401)
        return await handler(self, request)

    return wrapper


def _optional_int(value: Optional[str], name: str) -> Optional[int]:
    if value is None or value == '':
        return None
    try:
        return int(value)
    except ValueError:
        raise InvalidRequest(f'{name} must be an integer')


class QueryApi:
    """Route handlers for log groups, queries, history and saved queries."""

    def __init__(self, services: Services):
        self.services = services

    def routes(self) -> List[Route]:
        return [
            Route('/api/log-groups', self.list_log_groups, methods=['GET']),
            Route('/api/query', self.run_query, methods=['POST']),
            Route('/api/query-history', self.list_query_history, methods=['GET']),
            Route('/api/saved-queries', self.list_saved_queries, methods=['GET']),
            Route('/api/saved-queries', self.create_saved_query, methods=['POST']),
            Route('/api/saved-queries/{id}', self.delete_saved_query, methods=['DELETE']),
        ]

    def register(self, mcp):
        """Register the API routes on the FastMCP HTTP app."""
        for route in self.routes():
            mcp.custom_route(route.path, methods=sorted(route.methods - {'HEAD'}))(route.endpoint)

    @requires_user
    async def list_log_groups(self, request: Request) -> JSONResponse:
        try:
            page = await self.services.engine.list_log_groups(
                next_token=request.query_params.get('nextToken') or None
            )
            return JSONResponse(page.model_dump(by_alias=True, mode='json'))
        except Exception as e:
            logger.error(f'Error in list_log_groups route: {str(e)}')
            return error_response(str(e), 500)

    @requires_user
    async def run_query(self, request: Request) -> JSONResponse:
        user = request.state.user
        payload, error = await _read_payload(request, LogQueryPayload)
        if payload is None:
            return error_response('Invalid request payload', 400, details=error)

        query_request = LogQueryRequest(
            log_group_name=payload.log_group_name,
            query_string=payload.query_string,
            window=LogQueryWindow(start_time=payload.start_time, end_time=payload.end_time),
            limit=payload.limit,
        )
        options = QueryExecutionOptions(
            **remove_null_values(
                {
                    'poll_interval_ms': payload.poll_interval_ms,
                    'max_poll_attempts': payload.max_poll_attempts,
                }
            )
        )

        try:
            history, result = await run_query_with_history(
                self.services.engine,
                self.services.repository,
                query_request,
                options,
                requester_type='user',
                requester_id=user.id,
            )
        except InvalidRequest as e:
            return error_response(str(e), 400)
        except BackendProtocolError as e:
            return error_response(str(e), 502)
        except QueryTimeout as e:
            return error_response(str(e), 504, queryId=e.query_id)
        except Exception as e:
            logger.error(f'Error in query route: {str(e)}')
            return error_response(str(e), 500)

        body = result.model_dump(by_alias=True, mode='json')
        return JSONResponse({'historyId': history.id, **body})

    @requires_user
    async def list_query_history(self, request: Request) -> JSONResponse:
        user = request.state.user
        try:
            limit = _optional_int(request.query_params.get('limit'), 'limit')
            offset = _optional_int(request.query_params.get('offset'), 'offset')
        except InvalidRequest as e:
            return error_response(str(e), 400)

        try:
            history = await self.services.repository.list_query_history(
                user.id, limit=limit, offset=offset
            )
            return JSONResponse({'history': [h.model_dump(mode='json') for h in history]})
        except Exception as e:
            logger.error(f'Error in query history route: {str(e)}')
            return error_response(str(e), 500)

    @requires_user
    async def list_saved_queries(self, request: Request) -> JSONResponse:
        user = request.state.user
        try:
            saved = await self.services.repository.list_saved_queries(user.id)
            return JSONResponse({'saved': [s.model_dump(mode='json') for s in saved]})
        except Exception as e:
            logger.error(f'Error in saved queries route: {str(e)}')
            return error_response(str(e), 500)

    @requires_user
    async def create_saved_query(self, request: Request) -> JSONResponse:
        user = request.state.user
        payload, error = await _read_payload(request, SavedQueryPayload)
        if payload is None:
            return error_response('Invalid payload', 400, details=error)

        try:
            saved = await self.services.repository.create_saved_query(
                SavedQueryInput(user_id=user.id, **payload.model_dump())
            )
            return JSONResponse({'saved': saved.model_dump(mode='json')})
        except Exception as e:
            logger.error(f'Error in saved queries route: {str(e)}')
            return error_response(str(e), 500)

    @requires_user
    async def delete_saved_query(self, request: Request) -> JSONResponse:
        user = request.state.user
        saved_query_id = request.path_params.get('id')
        if not saved_query_id:
            return error_response('Missing saved query id', 400)

        try:
            await self.services.repository.delete_saved_query(saved_query_id, user.id)
            return JSONResponse({'success': True})
        except Exception as e:
            logger.error(f'Error in delete saved query route: {str(e)}')
            return error_response(str(e), 500)
