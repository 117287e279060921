"""Environment-driven construction of the engine, the store and the auth service."""

import os
from cloudwatch_interface_server.cloudwatch_logs.backend import Boto3LogsBackend
from cloudwatch_interface_server.cloudwatch_logs.engine import CloudWatchQueryEngine
from cloudwatch_interface_server.errors import ConfigurationError
from cloudwatch_interface_server.supabase.auth_service import SupabaseAuthService
from cloudwatch_interface_server.supabase.repository import SupabaseRepository
from loguru import logger
from typing import Dict, Optional, Tuple


DEFAULT_HOST = '0.0.0.0'
DEFAULT_PORT = 3334


def aws_credentials_from_env() -> Optional[Dict[str, str]]:
    access_key_id = os.getenv('AWS_ACCESS_KEY_ID')
    secret_access_key = os.getenv('AWS_SECRET_ACCESS_KEY')
    if not access_key_id or not secret_access_key:
        return None

    credentials = {'access_key_id': access_key_id, 'secret_access_key': secret_access_key}
    if session_token := os.getenv('AWS_SESSION_TOKEN'):
        credentials['session_token'] = session_token
    return credentials


def create_engine_from_env(region: Optional[str] = None) -> CloudWatchQueryEngine:
    region = os.getenv('AWS_REGION') or region
    if not region:
        raise ConfigurationError('AWS_REGION must be set to initialise CloudWatch')

    return CloudWatchQueryEngine(
        Boto3LogsBackend(region=region, credentials=aws_credentials_from_env())
    )


def supabase_config_from_env() -> Tuple[str, str]:
    url = os.getenv('SUPABASE_URL')
    service_role_key = os.getenv('SUPABASE_SERVICE_ROLE_KEY')
    if not url or not service_role_key:
        raise ConfigurationError('SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set')
    return url, service_role_key


def create_repository_from_env() -> SupabaseRepository:
    url, service_role_key = supabase_config_from_env()
    return SupabaseRepository.from_service_role(url, service_role_key)


def create_auth_service_from_env(
    repository: Optional[SupabaseRepository] = None,
) -> SupabaseAuthService:
    url, service_role_key = supabase_config_from_env()
    return SupabaseAuthService.from_service_role(
        url,
        service_role_key,
        jwt_secret=os.getenv('SUPABASE_JWT_SECRET') or None,
        repository=repository,
    )


def server_address_from_env() -> Tuple[str, int]:
    host = os.getenv('CLOUDWATCH_INTERFACE_HOST', DEFAULT_HOST)
    raw_port = os.getenv('CLOUDWATCH_INTERFACE_PORT', str(DEFAULT_PORT))

    try:
        port = int(raw_port)
    except ValueError:
        # Kubernetes injects <SERVICE>_PORT as tcp://host:port
        if raw_port.startswith('tcp://') and ':' in raw_port:
            port = int(raw_port.rsplit(':', 1)[-1])
            logger.warning(f'Normalized CLOUDWATCH_INTERFACE_PORT {raw_port} to {port}')
        else:
            logger.warning(f'Invalid CLOUDWATCH_INTERFACE_PORT {raw_port}, defaulting to {DEFAULT_PORT}')
            port = DEFAULT_PORT

    return host, port
