"""
Pydantic schemas for the offline mutation queue.

QueuedMutation is also the on-disk shape: entries are stored as
model_dump_json() and read back with model_validate_json().
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class QueuedMutation(BaseModel):
    """A write that could not be sent and waits for replay."""
    id: str = Field(..., description="Unique id generated at enqueue time")
    mutation: str = Field(
        ...,
        description="Name of the remote operation to replay",
        examples=["create_transaction"]
    )
    variables: Dict[str, Any] = Field(
        default_factory=dict,
        description="Arguments of the remote operation"
    )
    timestamp: int = Field(..., description="Enqueue time (epoch milliseconds)")
    retry_count: int = Field(0, description="Replay attempts made so far", ge=0)
    error: Optional[str] = Field(None, description="Last failure reason")


class NetworkStatus(BaseModel):
    """Connectivity and backlog as shown by the offline indicator."""
    is_online: bool = Field(..., description="Whether the backend is considered reachable")
    queue_size: int = Field(..., description="Pending queued mutations", ge=0)


class SyncReport(BaseModel):
    """Outcome of one drain pass."""
    replayed: List[str] = Field(default_factory=list, description="Ids replayed and removed")
    retried: List[str] = Field(default_factory=list, description="Ids that failed and stay queued")
    evicted: List[str] = Field(
        default_factory=list,
        description="Ids dropped after exhausting the retry budget"
    )
    interrupted: bool = Field(
        False,
        description="True when connectivity was lost and the pass stopped early"
    )


class OfflineQueueResponse(BaseModel):
    """Response for GET /offline-queue."""
    status: NetworkStatus
    entries: List[QueuedMutation] = Field(default_factory=list)


class ConnectivityUpdateRequest(BaseModel):
    """Request to report a connectivity transition from the client."""
    is_online: bool = Field(..., description="Reported connectivity")


class OfflineQueueClearResponse(BaseModel):
    """Response after clearing the queue."""
    status: NetworkStatus
    message: str = Field(..., examples=["Offline queue cleared"])
