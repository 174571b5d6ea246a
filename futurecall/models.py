"""
Request/response models for the call handler.

Pydantic models describe the JSON wire format of /initiate-call.
Dataclasses describe request-scoped values that never leave the process.

Python 3.9 compatible - uses typing.List, typing.Optional, typing.Union
"""

from dataclasses import dataclass, field
from typing import List, Optional, Union

from pydantic import BaseModel, Field


class CallRequester(BaseModel):
    """The part of an /initiate-call body needed for the identity check."""
    user_id: str = Field(min_length=1)


class InitiateCallRequest(CallRequester):
    """Request to call the user."""
    to_phone_number: str = Field(min_length=1)


class SuccessResponse(BaseModel):
    success: bool = True
    message: str
    call_sid: Optional[str] = None
    timestamp: str
    requestId: str


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    timestamp: str
    requestId: str


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str


@dataclass(frozen=True)
class CallRequest:
    """A validated request to place an outbound call."""
    requesting_user_id: str
    target_phone_number: str


# Turn context: exactly one of these per webhook invocation

@dataclass(frozen=True)
class InitialTurn:
    """The call was just answered; nobody has spoken yet."""


@dataclass(frozen=True)
class ContinuationTurn:
    """The caller said something during the previous listen window."""
    utterance: str
    confidence: Optional[float] = None


TurnContext = Union[InitialTurn, ContinuationTurn]


@dataclass(frozen=True)
class GoalSummary:
    title: str
    category_name: str = "Unknown"
    deadline: Optional[str] = None
    frequency: Optional[str] = None
    start_date: Optional[str] = None
    motivation_text: Optional[str] = None
    obstacles: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class UserContext:
    """Everything the reply pipeline knows about the user for one turn."""
    user_id: str
    voice_preference: str
    goals: List[GoalSummary] = field(default_factory=list)


@dataclass(frozen=True)
class AudioArtifact:
    """Synthesized speech for one turn, written once and never touched again."""
    audio: bytes = field(repr=False)
    storage_key: str
    public_url: str

