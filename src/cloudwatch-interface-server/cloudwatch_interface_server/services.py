"""Lazily built collaborators shared by the REST routes and the MCP tools."""

from cloudwatch_interface_server.cloudwatch_logs.engine import CloudWatchQueryEngine
from cloudwatch_interface_server.config import (
    create_auth_service_from_env,
    create_engine_from_env,
    create_repository_from_env,
)
from cloudwatch_interface_server.supabase.auth_service import SupabaseAuthService
from cloudwatch_interface_server.supabase.models import AuthenticatedUser
from cloudwatch_interface_server.supabase.repository import SupabaseRepository
from typing import Optional


class Services:
    """Holds the engine, repository and auth service.

    Anything not passed in is built from the environment on first use, so
    the server can start (and serve /health) before AWS or Supabase
    settings are checked.
    """

    def __init__(
        self,
        engine: Optional[CloudWatchQueryEngine] = None,
        repository: Optional[SupabaseRepository] = None,
        auth_service: Optional[SupabaseAuthService] = None,
    ):
        self._engine = engine
        self._repository = repository
        self._auth_service = auth_service

    @property
    def engine(self) -> CloudWatchQueryEngine:
        if self._engine is None:
            self._engine = create_engine_from_env()
        return self._engine

    @property
    def repository(self) -> SupabaseRepository:
        if self._repository is None:
            self._repository = create_repository_from_env()
        return self._repository

    @property
    def auth_service(self) -> SupabaseAuthService:
        if self._auth_service is None:
            self._auth_service = create_auth_service_from_env(self.repository)
        return self._auth_service

    async def authenticate(self, access_token: str) -> AuthenticatedUser:
        return await self.auth_service.get_user_from_access_token(access_token)

    async def aclose(self) -> None:
        """Close the HTTP clients of whatever was built. Safe to call more than once."""
        if self._auth_service is not None:
            await self._auth_service.aclose()
        if self._repository is not None:
            await self._repository.aclose()
