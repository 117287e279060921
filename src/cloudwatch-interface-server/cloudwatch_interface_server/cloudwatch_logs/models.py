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

"""Data models for CloudWatch Logs Insights queries."""

from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, PositiveInt
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Optional


DEFAULT_POLL_INTERVAL_MS = 1000
DEFAULT_MAX_POLL_ATTEMPTS = 30


class CamelModel(BaseModel):
    """Immutable model that serializes with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class LogQueryStatus(str, Enum):
    """Canonical query status, independent of the backend's own vocabulary."""

    SCHEDULED = 'scheduled'
    RUNNING = 'running'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'
    CANCELLED = 'cancelled'

    @property
    def is_terminal(self) -> bool:
        return self not in (LogQueryStatus.SCHEDULED, LogQueryStatus.RUNNING)


class LogQueryWindow(CamelModel):
    """Time range of a query. Naive datetimes are read as UTC."""

    start_time: datetime
    end_time: datetime


class LogQueryRequest(CamelModel):
    """A single Logs Insights query against one log group.

    Emptiness and ordering checks live in the validator so that every
    rejection is reported as ``InvalidRequest``.
    """

    log_group_name: Optional[str] = None
    query_string: Optional[str] = None
    window: LogQueryWindow
    limit: Optional[int] = None


class QueryExecutionOptions(CamelModel):
    """Polling budget for ``run_query``.

    Worst case polling time is roughly ``poll_interval_ms * max_poll_attempts``.
    """

    poll_interval_ms: PositiveInt = DEFAULT_POLL_INTERVAL_MS
    max_poll_attempts: PositiveInt = DEFAULT_MAX_POLL_ATTEMPTS


class LogQueryResultField(CamelModel):
    field: str = ''
    value: str = ''


class LogQueryResultRecord(CamelModel):
    fields: List[LogQueryResultField] = Field(default_factory=list)


class LogQueryResult(CamelModel):
    """Normalized outcome of a query.

    ``statistics`` is passed through from the backend untouched.
    """

    query_id: str
    status: LogQueryStatus
    records: List[LogQueryResultRecord] = Field(default_factory=list)
    statistics: Optional[Dict[str, Any]] = None


class LogGroupMetadata(BaseModel):
    """A log group as returned by describe_log_groups."""

    model_config = ConfigDict(extra='allow')

    logGroupName: str
    creationTime: Optional[int] = None
    retentionInDays: Optional[int] = None
    storedBytes: Optional[int] = None
    kmsKeyId: Optional[str] = None
    dataProtectionStatus: Optional[str] = None
    logGroupClass: Optional[str] = None
    logGroupArn: Optional[str] = None


class LogGroupPage(CamelModel):
    log_groups: List[LogGroupMetadata] = Field(default_factory=list)
    next_token: Optional[str] = None


class LogsQueryCancelResult(BaseModel):
    success: bool
