"""Saved query and query history tools for MCP server."""

from cloudwatch_interface_server.cloudwatch_logs.tools import AccessToken
from cloudwatch_interface_server.services import Services
from cloudwatch_interface_server.supabase.models import SavedQueryInput
from fastmcp import Context
from loguru import logger
from pydantic import Field
from typing import Annotated, Dict, List


class QueryLibraryTools:
    """Tools over the user's saved queries and query history."""

    def __init__(self, services: Services):
        self.services = services

    def register(self, mcp):
        """Register all saved query and history tools with the MCP server."""
        mcp.tool(name='list_saved_queries')(self.list_saved_queries)

        mcp.tool(name='save_query')(self.save_query)

        mcp.tool(name='delete_saved_query')(self.delete_saved_query)

        mcp.tool(name='list_query_history')(self.list_query_history)

    async def list_saved_queries(self, ctx: Context, access_token: AccessToken) -> Dict:
        """List saved queries for the authenticated user, newest first."""
        try:
            user = await self.services.authenticate(access_token)
            saved = await self.services.repository.list_saved_queries(user.id)
            return {'saved': [s.model_dump(mode='json') for s in saved]}
        except Exception as e:
            logger.error(f'Error in list_saved_queries_tool: {str(e)}')
            raise

    async def save_query(
        self,
        ctx: Context,
        access_token: AccessToken,
        name: Annotated[str, Field(min_length=1, description='Display name of the query.')],
        log_group: Annotated[str, Field(min_length=1, description='Log group the query targets.')],
        query_string: Annotated[
            str, Field(min_length=1, description='The Logs Insights query string.')
        ],
        description: Annotated[str | None, Field(max_length=512)] = None,
        tags: Annotated[List[str] | None, Field(max_length=10)] = None,
    ) -> Dict:
        """Persist a saved query for the authenticated user.

        Usage: Save a query that worked well so it can be found with list_saved_queries later.
        """
        try:
            user = await self.services.authenticate(access_token)
            saved = await self.services.repository.create_saved_query(
                SavedQueryInput(
                    user_id=user.id,
                    name=name,
                    log_group=log_group,
                    query_string=query_string,
                    description=description,
                    tags=tags,
                )
            )
            logger.info(f'Saved query {saved.id} for user {user.id}')
            return {'saved': saved.model_dump(mode='json')}
        except Exception as e:
            logger.error(f'Error in save_query_tool: {str(e)}')
            raise

    async def delete_saved_query(
        self,
        ctx: Context,
        access_token: AccessToken,
        id: Annotated[str, Field(description='Id of the saved query to delete.')],
    ) -> str:
        """Delete a saved query owned by the authenticated user."""
        try:
            user = await self.services.authenticate(access_token)
            await self.services.repository.delete_saved_query(id, user.id)
            return 'Deleted'
        except Exception as e:
            logger.error(f'Error in delete_saved_query_tool: {str(e)}')
            raise

    async def list_query_history(
        self,
        ctx: Context,
        access_token: AccessToken,
        limit: Annotated[int | None, Field(gt=0, le=100)] = None,
        offset: Annotated[int | None, Field(ge=0)] = None,
    ) -> Dict:
        """List the authenticated user's query history, newest first (20 per page by default)."""
        try:
            user = await self.services.authenticate(access_token)
            history = await self.services.repository.list_query_history(
                user.id, limit=limit, offset=offset
            )
            return {'history': [h.model_dump(mode='json') for h in history]}
        except Exception as e:
            logger.error(f'Error in list_query_history_tool: {str(e)}')
            raise
