import asyncio
from cloudwatch_interface_server.api.routes import QueryApi
from cloudwatch_interface_server.cloudwatch_logs.tools import CloudWatchLogsTools
from cloudwatch_interface_server.config import server_address_from_env
from cloudwatch_interface_server.middleware import SupabaseAuthMiddleware
from cloudwatch_interface_server.query_library.tools import QueryLibraryTools
from cloudwatch_interface_server.services import Services
from fastmcp import FastMCP
from loguru import logger
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from typing import List


INSTRUCTIONS = (
    'Use this MCP server to browse CloudWatch log groups, run CloudWatch Logs Insights queries '
    'and manage saved queries and query history on behalf of a user. Every tool takes the '
    "user's Supabase access token. Queries are recorded in the user's query history. If a "
    'query times out while polling, use get_logs_insights_query_results with the returned '
    'queryId to retrieve the results later, or cancel_logs_insights_query to stop it.'
)


def build_server(services: Services) -> FastMCP:
    """Create the FastMCP server with all tools and REST routes registered."""
    mcp = FastMCP('cloudwatch-interface-server', instructions=INSTRUCTIONS)

    try:
        CloudWatchLogsTools(services).register(mcp)
        logger.info('CloudWatch Logs tools registered successfully')
        QueryLibraryTools(services).register(mcp)
        logger.info('Query library tools registered successfully')
        QueryApi(services).register(mcp)
        logger.info('REST API routes registered successfully')
    except Exception as e:
        logger.error(f'Error initializing tools: {str(e)}')
        raise

    @mcp.custom_route('/health', methods=['GET'], include_in_schema=False)
    async def health_check(request: Request) -> JSONResponse:
        """Health check endpoint."""
        return JSONResponse({'status': 'ok'})

    return mcp


def http_middleware(services: Services) -> List[Middleware]:
    """Middleware the HTTP app needs for the /api/ routes to authenticate."""
    return [Middleware(SupabaseAuthMiddleware, services=services)]


services = Services()
mcp = build_server(services)


async def serve(host: str, port: int):
    """Serve over streamable HTTP and close the Supabase clients on shutdown."""
    try:
        await mcp.run_async(
            transport='streamable-http',
            host=host,
            port=port,
            middleware=http_middleware(services),
        )
    finally:
        await services.aclose()
        logger.info('Closed Supabase clients')


def main():
    """Run the MCP server."""
    logger.info('Initializing CloudWatch interface server...')
    host, port = server_address_from_env()

    asyncio.run(serve(host, port))

    logger.info('CloudWatch interface server stopped')


if __name__ == '__main__':
    main()
