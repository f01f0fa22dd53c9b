# src/llmbridge/models.py
"""
Core data models for the llmbridge library.

This module defines the Pydantic models used to represent chat requests,
streamed chat events, vector collections, points and search results, and the
health details reported to the host application. These models keep the wire
shapes consistent between the providers, the streaming relay and the vector
subsystem.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

UINT64_MAX = 2**64 - 1


class Role(str, Enum):
    """
    Enumeration of the roles accepted in a chat conversation.
    """
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"

    @classmethod
    def _missing_(cls, value: object): # type: ignore[misc]
        """Handles case-insensitive matching, e.g. "User" maps to Role.USER."""
        if isinstance(value, str):
            lower_value = value.lower()
            for member in cls:
                if member.value == lower_value:
                    return member
        return None


class ChatMessage(BaseModel):
    """
    A single message in a chat conversation.

    Empty or unknown roles and empty content are not rejected here. Request
    validation raises a library `ValidationError` for them before any network
    call is attempted.
    """
    model_config = ConfigDict(frozen=True)

    role: str = Field(description="The role of the message sender (system, user or assistant).")
    content: str = Field(description="The textual content of the message.")

    @field_validator("role", mode="before")
    @classmethod
    def _role_to_str(cls, value: Any) -> Any:
        if isinstance(value, Enum):
            return value.value
        return value


class ChatCompletionRequest(BaseModel):
    """
    A chat completion request as accepted by the proxy.

    The request is immutable once issued. Keys other than `model`, `messages`
    and `stream` (temperature, max_tokens, ...) are kept as provider-specific
    options and forwarded untouched.
    """
    model_config = ConfigDict(frozen=True, extra="allow")

    model: str = Field("base", description="Abstract model name (base, large) or a provider model name.")
    messages: List[ChatMessage] = Field(default_factory=list, description="Ordered conversation.")
    stream: bool = Field(False, description="Whether the response should be streamed.")

    def options(self) -> Dict[str, Any]:
        """Returns the provider-specific options carried by this request."""
        return dict(self.model_extra or {})

    def messages_payload(self) -> List[Dict[str, str]]:
        """Returns the messages in the provider wire format, order preserved."""
        return [{"role": m.role, "content": m.content} for m in self.messages]

    def with_stream(self, stream: bool = True) -> "ChatCompletionRequest":
        """Returns a copy of this request with `stream` set."""
        return self.model_copy(update={"stream": stream})


class StreamEvent(BaseModel):
    """
    One event of a streamed chat completion.

    Exactly one of the three kinds is set: a `role` announcement, a `content`
    delta, or the terminal `done` marker.
    """
    model_config = ConfigDict(frozen=True)

    role: Optional[str] = None
    content: Optional[str] = None
    done: bool = False

    @model_validator(mode="after")
    def _check_single_kind(self) -> "StreamEvent":
        kinds = (self.role is not None) + (self.content is not None) + int(self.done)
        if kinds != 1:
            raise ValueError("A stream event must carry exactly one of role, content or done.")
        return self

    @property
    def kind(self) -> str:
        if self.done:
            return "done"
        return "role" if self.role is not None else "content"

    @classmethod
    def done_event(cls) -> "StreamEvent":
        return cls(done=True)

    @classmethod
    def from_chunk(cls, chunk: Dict[str, Any]) -> List["StreamEvent"]:
        """
        Parses an OpenAI-style chunk (or a relayed transport message) into events.

        A chunk may carry a role and a content delta at once, in which case the
        role event comes first. A `finish_reason` or a `delta.done` flag yields
        the terminal event. Empty content deltas are dropped.

        Args:
            chunk: A dictionary shaped like `{"choices": [{"delta": {...}, "finish_reason": ...}]}`.

        Returns:
            The events carried by the chunk, in order. May be empty.
        """
        choices = chunk.get("choices") or []
        if not choices:
            return []
        choice = choices[0] or {}
        delta = choice.get("delta") or {}
        events: List[StreamEvent] = []
        if delta.get("role"):
            events.append(cls(role=delta["role"]))
        if delta.get("content"):
            events.append(cls(content=delta["content"]))
        if delta.get("done") or choice.get("finish_reason"):
            events.append(cls.done_event())
        return events

    @classmethod
    def from_message(cls, message: Dict[str, Any]) -> List["StreamEvent"]:
        """Parses a relayed transport message. Padding and error keys are ignored."""
        return cls.from_chunk(message)

    def to_message(self) -> Dict[str, Any]:
        """Serializes the event into the transport message shape."""
        if self.done:
            delta: Dict[str, Any] = {"done": True}
        elif self.role is not None:
            delta = {"role": self.role}
        else:
            delta = {"content": self.content}
        return {"choices": [{"delta": delta}]}


class Collection(BaseModel):
    """A named, dimension-typed partition of the vector database bound to one embedding model."""
    name: str
    dimension: int = Field(gt=0)
    model: str


class VectorPoint(BaseModel):
    """
    A point stored in a vector collection.

    The id is a 64-bit content hash of the canonical JSON payload, not a random
    identifier, so re-embedding unchanged content yields the same id.
    """
    id: int = Field(ge=0, le=UINT64_MAX)
    embedding: List[float]
    payload: Dict[str, Any] = Field(default_factory=dict)


class SearchResult(BaseModel):
    """A single similarity search hit. Higher scores are more similar."""
    payload: Dict[str, Any] = Field(default_factory=dict)
    score: float


class SearchRequest(BaseModel):
    """Body of a vector search call."""
    model_config = ConfigDict(populate_by_name=True)

    collection: str
    query: str
    top_k: int = Field(10, alias="topK", gt=0)
    filter: Optional[Dict[str, Any]] = None


class SearchResponse(BaseModel):
    results: List[SearchResult] = Field(default_factory=list)


class SourceItem(BaseModel):
    """An entry of the source metadata listing (e.g. a dashboard search hit)."""
    uid: str
    title: str = ""


class ModelHealth(BaseModel):
    ok: bool = False
    error: Optional[str] = None


class ProviderHealthDetails(BaseModel):
    """Health of the LLM provider: whether it is configured and whether any model works."""
    configured: bool = False
    ok: bool = False
    error: Optional[str] = None
    models: Dict[str, ModelHealth] = Field(default_factory=dict)


class VectorHealthDetails(BaseModel):
    """Health of the vector subsystem: whether it is enabled and reachable."""
    enabled: bool = False
    ok: bool = False
    error: Optional[str] = None


class HealthCheckDetails(BaseModel):
    """
    Full health check payload.

    `openAI` repeats the provider details for clients that predate the
    `llmProvider` key.
    """
    model_config = ConfigDict(populate_by_name=True)

    llm_provider: ProviderHealthDetails = Field(alias="llmProvider")
    open_ai: ProviderHealthDetails = Field(alias="openAI")
    vector: VectorHealthDetails
    version: str
