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

"""CloudWatch Logs tools for MCP server."""

import datetime
from cloudwatch_interface_server.cloudwatch_logs.backend import remove_null_values
from cloudwatch_interface_server.cloudwatch_logs.models import (
    LogQueryRequest,
    LogQueryWindow,
    LogsQueryCancelResult,
    QueryExecutionOptions,
)
from cloudwatch_interface_server.errors import InvalidRequest, QueryTimeout
from cloudwatch_interface_server.history import run_query_with_history
from cloudwatch_interface_server.services import Services
from fastmcp import Context
from loguru import logger
from pydantic import Field, ValidationError
from typing import Annotated, Dict


MAX_QUERY_LIMIT = 10000
MAX_POLL_INTERVAL_MS = 10000
MAX_POLL_ATTEMPTS = 100

AccessToken = Annotated[
    str,
    Field(min_length=1, description='Supabase access token of the user the agent acts for.'),
]


def parse_iso8601(value: str, name: str) -> datetime.datetime:
    """Parse an ISO 8601 timestamp, accepting a trailing Z for UTC."""
    try:
        if value.endswith('Z'):
            value = value[:-1] + '+00:00'
        return datetime.datetime.fromisoformat(value)
    except (AttributeError, ValueError):
        raise InvalidRequest(f'{name} must be an ISO 8601 datetime')


class CloudWatchLogsTools:
    """CloudWatch Logs tools for MCP server."""

    def __init__(self, services: Services):
        """Initialize the CloudWatch Logs tools."""
        self.services = services

    def register(self, mcp):
        """Register all CloudWatch Logs tools with the MCP server."""
        mcp.tool(name='list_log_groups')(self.list_log_groups)

        mcp.tool(name='run_logs_insights_query')(self.run_logs_insights_query)

        mcp.tool(name='get_logs_insights_query_results')(self.get_logs_insights_query_results)

        mcp.tool(name='cancel_logs_insights_query')(self.cancel_logs_insights_query)

    async def list_log_groups(
        self,
        ctx: Context,
        access_token: AccessToken,
        next_token: Annotated[
            str | None,
            Field(description='Pagination token returned by a previous call.'),
        ] = None,
        log_group_name_prefix: Annotated[
            str | None,
            Field(
                description='An exact prefix to filter log groups by name. Only log groups with names starting with this prefix will be returned.'
            ),
        ] = None,
        max_items: Annotated[
            int | None,
            Field(gt=0, le=50, description='The maximum number of log groups to return.'),
        ] = None,
    ) -> Dict:
        """Lists CloudWatch log groups available to the deployment, one page at a time.

        Usage: Use this tool to discover log groups to run Logs Insights queries against.

        Returns:
        --------
            A dictionary with:
                - logGroups: log group metadata (logGroupName, creationTime, retentionInDays, storedBytes, logGroupArn, ...)
                - nextToken: token for the next page, or null
        """
        try:
            await self.services.authenticate(access_token)

            page = await self.services.engine.list_log_groups(
                next_token=next_token, name_prefix=log_group_name_prefix, limit=max_items
            )
            logger.info(f'Listed {len(page.log_groups)} log groups')
            return page.model_dump(by_alias=True, mode='json')
        except Exception as e:
            logger.error(f'Error in list_log_groups_tool: {str(e)}')
            raise

    async def run_logs_insights_query(
        self,
        ctx: Context,
        access_token: AccessToken,
        log_group_name: Annotated[str, Field(description='The log group to query.')],
        query_string: Annotated[
            str,
            Field(
                description='The query string in the Cloudwatch Log Insights Query Language. See https://docs.aws.amazon.com/AmazonCloudWatch/latest/logs/CWL_QuerySyntax.html.'
            ),
        ],
        start_time: Annotated[
            str,
            Field(
                description='ISO 8601 formatted start time for the query window (e.g., "2025-04-19T20:00:00+00:00").'
            ),
        ],
        end_time: Annotated[
            str,
            Field(
                description='ISO 8601 formatted end time for the query window (e.g., "2025-04-19T21:00:00+00:00").'
            ),
        ],
        limit: Annotated[
            int | None,
            Field(gt=0, le=MAX_QUERY_LIMIT, description='The maximum number of log events to return.'),
        ] = None,
        poll_interval_ms: Annotated[
            int | None,
            Field(
                gt=0,
                le=MAX_POLL_INTERVAL_MS,
                description='Milliseconds to wait between polls. Defaults to 1000.',
            ),
        ] = None,
        max_poll_attempts: Annotated[
            int | None,
            Field(
                gt=0,
                le=MAX_POLL_ATTEMPTS,
                description='Maximum number of polls before giving up. Defaults to 30.',
            ),
        ] = None,
    ) -> Dict:
        """Executes a CloudWatch Logs Insights query, waits for it to finish and returns the results.

        The query is recorded in the user's query history as pending, then finalized as
        succeeded or failed.

        Usage: Use to query, filter, collect statistics, or find patterns in a log group. For example, the following
        query lists exceptions per hour.

        ```
        filter @message like /Exception/
        | stats count(*) as exceptionCount by bin(1h)
        | sort exceptionCount desc
        ```

        Returns:
        --------
            A dictionary containing:
                - queryId: CloudWatch query id
                - status: succeeded, failed or cancelled
                - records: list of rows, each {"fields": [{"field": ..., "value": ...}]}
                - statistics: Query performance statistics
            If polling runs out of attempts, status is "Polling Timeout" and the queryId can be passed to
            get_logs_insights_query_results later.
        """
        try:
            user = await self.services.authenticate(access_token)

            try:
                request = LogQueryRequest(
                    log_group_name=log_group_name,
                    query_string=query_string,
                    window=LogQueryWindow(
                        start_time=parse_iso8601(start_time, 'start_time'),
                        end_time=parse_iso8601(end_time, 'end_time'),
                    ),
                    limit=limit,
                )
                options = QueryExecutionOptions(
                    **remove_null_values(
                        {'poll_interval_ms': poll_interval_ms, 'max_poll_attempts': max_poll_attempts}
                    )
                )
            except ValidationError as e:
                raise InvalidRequest(f'Invalid query arguments: {e}') from e

            try:
                history, result = await run_query_with_history(
                    self.services.engine,
                    self.services.repository,
                    request,
                    options,
                    requester_type='agent',
                    requester_id=user.id,
                )
            except QueryTimeout as e:
                msg = f'Query {e.query_id} did not complete within {e.attempts} polls. Use get_logs_insights_query_results with the returned queryId to try again to retrieve query results.'
                logger.warning(msg)
                await ctx.warning(msg)
                return {'queryId': e.query_id, 'status': 'Polling Timeout', 'message': msg}

            response = result.model_dump(by_alias=True, mode='json')
            response['historyId'] = history.id
            return response
        except Exception as e:
            logger.error(f'Error in run_logs_insights_query_tool: {str(e)}')
            raise

    async def get_logs_insights_query_results(
        self,
        ctx: Context,
        access_token: AccessToken,
        query_id: Annotated[
            str,
            Field(
                description='The unique ID of the query to retrieve the results for. CRITICAL: This ID is returned by the run_logs_insights_query tool.'
            ),
        ],
    ) -> Dict:
        """Retrieves the results of a previously started CloudWatch Logs Insights query.

        Usage: If a log query started by run_logs_insights_query has a polling time out, this tool can be used to try to retrieve
        the query results again.

        Returns:
        --------
            A dictionary with queryId, status (scheduled, running, succeeded, failed or cancelled),
            records and statistics.
        """
        try:
            await self.services.authenticate(access_token)

            result = await self.services.engine.get_query_result(query_id)
            return result.model_dump(by_alias=True, mode='json')
        except Exception as e:
            logger.error(f'Error in get_query_results_tool: {str(e)}')
            raise

    async def cancel_logs_insights_query(
        self,
        ctx: Context,
        access_token: AccessToken,
        query_id: Annotated[
            str,
            Field(
                description='The unique ID of the ongoing query to cancel. CRITICAL: This ID is returned by the run_logs_insights_query tool.'
            ),
        ],
    ) -> LogsQueryCancelResult:
        """Cancels an ongoing CloudWatch Logs Insights query. If the query has already ended, returns an error that the given query is not running.

        Usage: If a log query started by run_logs_insights_query has a polling time out, this tool can be used to cancel
        it prematurely to avoid incurring additional costs.

        Returns:
        --------
            A LogsQueryCancelResult with a "success" key, which is True if the query was successfully cancelled.
        """
        try:
            await self.services.authenticate(access_token)

            success = await self.services.engine.cancel_query(query_id)
            return LogsQueryCancelResult(success=success)
        except Exception as e:
            logger.error(f'Error in cancel_query_tool: {str(e)}')
            raise
