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

"""Remote query backend: the CloudWatch Logs start/poll API behind a narrow interface."""

import asyncio
import boto3
import os
from botocore.config import Config
from cloudwatch_interface_server import MCP_SERVER_VERSION
from loguru import logger
from typing import Any, Dict, Optional, Protocol


class LogsQueryBackend(Protocol):
    """Capability the query engine needs from CloudWatch Logs.

    Responses use the CloudWatch wire shape (``queryId``, ``status``,
    ``results``, ``statistics``, ``logGroups``, ``nextToken``).
    """

    async def start(
        self,
        log_group_name: str,
        query_string: str,
        start_epoch_seconds: int,
        end_epoch_seconds: int,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]: ...

    async def poll(self, query_id: str) -> Dict[str, Any]: ...

    async def list_log_groups(
        self,
        next_token: Optional[str] = None,
        name_prefix: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]: ...

    async def stop(self, query_id: str) -> Dict[str, Any]: ...


def remove_null_values(d: Dict) -> Dict:
    """Return a new dictionary with the key-value pair of any null value removed."""
    return {k: v for k, v in d.items() if v is not None}


def create_logs_client(
    region: Optional[str] = None,
    credentials: Optional[Dict[str, str]] = None,
):
    """Create a CloudWatch Logs client.

    Args:
        region: AWS region
        credentials: Optional explicit keys (access_key_id, secret_access_key, session_token)

    Returns:
        CloudWatch Logs client
    """
    config = Config(user_agent_extra=f'cloudwatch-interface-server/{MCP_SERVER_VERSION}')

    try:
        if credentials:
            session = boto3.Session(
                aws_access_key_id=credentials['access_key_id'],
                aws_secret_access_key=credentials['secret_access_key'],
                aws_session_token=credentials.get('session_token'),
                region_name=region,
            )
            return session.client('logs', config=config)

        if aws_profile := os.environ.get('AWS_PROFILE'):
            return boto3.Session(profile_name=aws_profile, region_name=region).client(
                'logs', config=config
            )
        return boto3.Session(region_name=region).client('logs', config=config)
    except Exception as e:
        logger.error(f'Error creating cloudwatch logs client for region {region}: {str(e)}')
        raise


class Boto3LogsBackend:
    """LogsQueryBackend over a boto3 ``logs`` client.

    boto3 is blocking, so every call runs in a worker thread to keep the
    event loop free while other requests are served.
    """

    def __init__(self, client=None, region: Optional[str] = None, credentials=None):
        self._client = client
        self._region = region
        self._credentials = credentials

    @property
    def client(self):
        if self._client is None:
            self._client = create_logs_client(self._region, self._credentials)
        return self._client

    async def start(
        self,
        log_group_name: str,
        query_string: str,
        start_epoch_seconds: int,
        end_epoch_seconds: int,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        kwargs = {
            'logGroupName': log_group_name,
            'queryString': query_string,
            'startTime': start_epoch_seconds,
            'endTime': end_epoch_seconds,
            'limit': limit,
        }
        return await asyncio.to_thread(self.client.start_query, **remove_null_values(kwargs))

    async def poll(self, query_id: str) -> Dict[str, Any]:
        return await asyncio.to_thread(self.client.get_query_results, queryId=query_id)

    async def list_log_groups(
        self,
        next_token: Optional[str] = None,
        name_prefix: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        kwargs = {
            'nextToken': next_token,
            'logGroupNamePrefix': name_prefix,
            'limit': limit,
        }
        return await asyncio.to_thread(
            self.client.describe_log_groups, **remove_null_values(kwargs)
        )

    async def stop(self, query_id: str) -> Dict[str, Any]:
        return await asyncio.to_thread(self.client.stop_query, queryId=query_id)
