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

"""Validation of Logs Insights query requests before any AWS call is made."""

import datetime
import math
from cloudwatch_interface_server.cloudwatch_logs.models import LogQueryRequest
from cloudwatch_interface_server.errors import InvalidRequest
from typing import Any


def to_epoch_seconds(value: datetime.datetime) -> int:
    """Convert a datetime to whole epoch seconds, rounding down.

    Naive datetimes are treated as UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    return math.floor(value.timestamp())


def _require_point_in_time(value: Any, name: str) -> None:
    if not isinstance(value, datetime.datetime):
        raise InvalidRequest(f'{name} must be a valid datetime')
    try:
        to_epoch_seconds(value)
    except (OverflowError, OSError, ValueError) as e:
        raise InvalidRequest(f'{name} must be a valid datetime: {e}') from e


def validate_query_request(request: LogQueryRequest) -> None:
    """Reject structurally or temporally invalid requests.

    Typed construction of LogQueryRequest already rejects a missing window or
    non-datetime bounds with a pydantic ValidationError; callers building
    requests from untyped input convert that to InvalidRequest. The checks
    here also cover requests assembled with ``model_construct``.

    Raises:
        InvalidRequest: naming the violated constraint
    """
    if not request.log_group_name:
        raise InvalidRequest('logGroupName is required')

    if not request.query_string:
        raise InvalidRequest('queryString is required')

    window = request.window
    if window is None:
        raise InvalidRequest('window is required')

    _require_point_in_time(window.start_time, 'window.startTime')
    _require_point_in_time(window.end_time, 'window.endTime')

    if _as_utc(window.start_time) >= _as_utc(window.end_time):
        raise InvalidRequest('window.startTime must be before window.endTime')

    if request.limit is not None and (
        isinstance(request.limit, bool) or not isinstance(request.limit, int) or request.limit <= 0
    ):
        raise InvalidRequest('limit must be a positive integer')


def _as_utc(value: datetime.datetime) -> datetime.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value
