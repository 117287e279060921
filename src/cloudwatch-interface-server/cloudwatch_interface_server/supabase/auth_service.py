"""Resolve Supabase access tokens to users."""

import httpx
import jwt
from cloudwatch_interface_server.errors import AuthenticationError, StoreError
from cloudwatch_interface_server.supabase.models import AuthenticatedUser
from cloudwatch_interface_server.supabase.repository import SupabaseRepository
from loguru import logger
from typing import Optional


class SupabaseAuthService:
    """Turns an access token into an AuthenticatedUser with its profile role.

    When a JWT secret is configured the token is verified locally with PyJWT;
    otherwise Supabase's ``/auth/v1/user`` endpoint is asked who the token
    belongs to.
    """

    def __init__(
        self,
        auth_client: httpx.AsyncClient,
        repository: SupabaseRepository,
        jwt_secret: Optional[str] = None,
    ):
        self.auth_client = auth_client
        self.repository = repository
        self.jwt_secret = jwt_secret

    @classmethod
    def from_service_role(
        cls,
        url: str,
        service_role_key: str,
        jwt_secret: Optional[str] = None,
        repository: Optional[SupabaseRepository] = None,
    ):
        auth_client = httpx.AsyncClient(
            base_url=f'{url.rstrip("/")}/auth/v1',
            headers={'apikey': service_role_key},
            timeout=30.0,
        )
        repository = repository or SupabaseRepository.from_service_role(url, service_role_key)
        return cls(auth_client, repository, jwt_secret)

    async def aclose(self) -> None:
        await self.auth_client.aclose()

    def _verify_token(self, token: str) -> dict:
        payload = jwt.decode(
            token,
            self.jwt_secret,
            algorithms=['HS256'],
            audience='authenticated',
        )
        return {'id': payload.get('sub'), 'email': payload.get('email')}

    async def _fetch_user(self, token: str) -> dict:
        response = await self.auth_client.get(
            '/user', headers={'Authorization': f'Bearer {token}'}
        )
        if response.is_error:
            raise AuthenticationError('Unable to authenticate request')
        return response.json()

    async def get_user_from_access_token(self, access_token: str) -> AuthenticatedUser:
        """Resolve a token and load the user's profile.

        Raises:
            AuthenticationError: if the token is missing, invalid, expired, or has no profile
        """
        if not access_token:
            raise AuthenticationError('Missing access token')

        try:
            if self.jwt_secret:
                user = self._verify_token(access_token)
            else:
                user = await self._fetch_user(access_token)
        except jwt.ExpiredSignatureError:
            logger.warning('Token expired')
            raise AuthenticationError('Token expired')
        except jwt.InvalidTokenError as e:
            logger.warning(f'Invalid token: {str(e)}')
            raise AuthenticationError('Unable to authenticate request')

        if not user or not user.get('id'):
            raise AuthenticationError('Unable to authenticate request')

        try:
            profile = await self.repository.get_profile_by_id(user['id'])
        except StoreError as e:
            logger.warning(f'No profile for user {user["id"]}: {str(e)}')
            raise AuthenticationError('Unable to authenticate request')

        return AuthenticatedUser(
            id=user['id'],
            email=user.get('email'),
            role=profile.role,
            profile=profile,
        )
