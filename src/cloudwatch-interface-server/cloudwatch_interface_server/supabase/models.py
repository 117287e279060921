"""Rows and inputs for the Supabase tables.

Tables: profiles, saved_queries, query_history and cloudwatch_logs.
"""

from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Literal, Optional


RequesterType = Literal['user', 'agent']
ProfileRole = Literal['admin', 'member']


class QueryHistoryStatus(str, Enum):
    PENDING = 'pending'
    RUNNING = 'running'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'


class ProfileRecord(BaseModel):
    model_config = ConfigDict(extra='ignore')

    id: str
    email: str
    display_name: Optional[str] = None
    role: ProfileRole = 'member'
    created_at: Optional[str] = None


class AuthenticatedUser(BaseModel):
    id: str
    email: Optional[str] = None
    role: ProfileRole
    profile: ProfileRecord


class SavedQueryInput(BaseModel):
    user_id: str
    name: str
    log_group: str
    query_string: str
    description: Optional[str] = None
    tags: Optional[List[str]] = None


class SavedQueryRecord(BaseModel):
    model_config = ConfigDict(extra='ignore')

    id: str
    user_id: str
    name: str
    log_group: str
    query_string: str
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class QueryHistoryInput(BaseModel):
    requester_type: RequesterType
    requester_id: Optional[str] = None
    log_group: str
    query_string: str
    status: QueryHistoryStatus = QueryHistoryStatus.PENDING
    error_message: Optional[str] = None
    result_row_count: Optional[int] = None
    summary_text: Optional[str] = None
    cloudwatch_query_id: Optional[str] = None


class QueryHistoryUpdate(BaseModel):
    """Partial update; only fields that are set are written."""

    status: Optional[QueryHistoryStatus] = None
    error_message: Optional[str] = None
    result_row_count: Optional[int] = None
    summary_text: Optional[str] = None
    cloudwatch_query_id: Optional[str] = None


class QueryHistoryRecord(BaseModel):
    model_config = ConfigDict(extra='ignore')

    id: str
    requester_type: RequesterType
    requester_id: Optional[str] = None
    log_group: str
    query_string: str
    status: QueryHistoryStatus
    error_message: Optional[str] = None
    result_row_count: Optional[int] = None
    summary_text: Optional[str] = None
    cloudwatch_query_id: Optional[str] = None
    created_at: Optional[str] = None


class LogRecordInput(BaseModel):
    """A log line to store in the cloudwatch_logs table."""

    log_group: str
    timestamp: datetime
    message: str
    ingestion_label: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class LogIngestionResult(BaseModel):
    inserted_count: int = 0
    deduplicated_count: int = 0
    deleted_old_count: int = 0
