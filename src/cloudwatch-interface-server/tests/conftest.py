"""Shared fixtures for the CloudWatch interface server tests."""

import pytest
from cloudwatch_interface_server.cloudwatch_logs.models import LogQueryRequest, LogQueryWindow
from datetime import datetime, timezone
from unittest.mock import AsyncMock


@pytest.fixture
def window():
    return LogQueryWindow(
        start_time=datetime(2024, 3, 10, 10, 0, 0, tzinfo=timezone.utc),
        end_time=datetime(2024, 3, 10, 11, 0, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def base_request(window):
    return LogQueryRequest(
        log_group_name='/aws/lambda/example',
        query_string='fields @timestamp, @message | sort @timestamp desc | limit 20',
        window=window,
    )


@pytest.fixture
def sleep():
    """Stand-in for asyncio.sleep so polling tests take no real time."""
    return AsyncMock()
