"""Authentication middleware for the REST API."""

from cloudwatch_interface_server.errors import AuthenticationError
from cloudwatch_interface_server.services import Services
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse


PROTECTED_PREFIX = '/api/'


class SupabaseAuthMiddleware(BaseHTTPMiddleware):
    """Resolve the bearer token of every /api/ request to a Supabase user.

    This middleware:
    1. Extracts the access token from the Authorization header
    2. Resolves it to a user and profile through SupabaseAuthService
    3. Attaches the user to request.state.user for route handlers

    Other paths (/health, /mcp) pass through untouched; MCP tools
    authenticate with their own access_token argument.
    """

    def __init__(self, app, services: Services):
        super().__init__(app)
        self.services = services

    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith(PROTECTED_PREFIX):
            return await call_next(request)

        auth_header = request.headers.get('Authorization', '')
        scheme, _, token = auth_header.partition(' ')
        if scheme.lower() != 'bearer' or not token.strip():
            logger.warning('Missing or invalid Authorization header')
            return JSONResponse(status_code=401, content={'error': 'Missing bearer token'})

        try:
            user = await self.services.auth_service.get_user_from_access_token(token.strip())
        except AuthenticationError as e:
            return JSONResponse(status_code=401, content={'error': str(e)})
        except Exception as e:
            logger.error(f'Authentication error: {str(e)}')
            return JSONResponse(status_code=500, content={'error': 'Authentication failed'})

        request.state.user = user
        logger.info(f'Authenticated request from user: {user.email or user.id}')
        return await call_next(request)
