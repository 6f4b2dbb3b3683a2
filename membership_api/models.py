"""
Pydantic models for API request/response validation.
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from enum import Enum


class ClusterPhase(str, Enum):
    PENDING = "Pending"
    JOINED = "Joined"
    TERMINATING = "Terminating"


class ClusterRegisterRequest(BaseModel):
    """Request to register a member cluster."""
    name: str = Field(
        ...,
        min_length=1,
        max_length=58,
        pattern=r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$",
        description="Cluster name (DNS label; the execution space adds a 5-char prefix)",
        examples=["east-1", "dc-1-cluster-1"],
    )
    labels: Dict[str, str] = Field(
        default_factory=dict,
        description="Labels used by override policies to target this cluster",
    )
    apiEndpoint: Optional[str] = Field(
        default=None,
        description="Member cluster API server URL",
    )


class ClusterCondition(BaseModel):
    type: str
    status: str
    reason: str = ""
    message: str = ""
    lastTransitionTime: Optional[str] = None


class ClusterResponse(BaseModel):
    """Cluster registration as seen by the dashboard."""
    name: str
    phase: ClusterPhase = ClusterPhase.PENDING
    executionSpace: Optional[str] = None
    labels: Dict[str, str] = {}
    apiEndpoint: Optional[str] = None
    createdAt: Optional[str] = None
    deletionTimestamp: Optional[str] = None
    conditions: List[ClusterCondition] = []


class ClusterListResponse(BaseModel):
    clusters: List[ClusterResponse]
    total: int


class ErrorResponse(BaseModel):
    detail: str
    code: str = "UNKNOWN_ERROR"


class ClusterEvent(BaseModel):
    timestamp: str = ""
    event: str = ""
    message: str = ""
    phase: str = ""
