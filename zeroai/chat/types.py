from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Any, Literal, Union

from zeroai.targets import ModelIdentity


@dataclass(frozen=True, slots=True)
class ToolCall:
    call_id: str
    fn_name: str
    fn_arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ToolResponse:
    call_id: str
    content: str


@dataclass(frozen=True, slots=True)
class Tool:
    name: str
    description: str | None = None
    schema: dict[str, Any] | None = None


MessageContent = Union[str, list[ToolCall], ToolResponse]


@dataclass(frozen=True, slots=True)
class ChatMessage:
    role: Literal["user", "assistant", "tool"]
    content: MessageContent

    @classmethod
    def user(cls, text: str) -> ChatMessage:
        return cls(role="user", content=text)

    @classmethod
    def assistant(cls, text: str) -> ChatMessage:
        return cls(role="assistant", content=text)

    @classmethod
    def tool_calls(cls, calls: list[ToolCall]) -> ChatMessage:
        return cls(role="assistant", content=list(calls))

    @classmethod
    def tool_response(cls, call_id: str, content: str) -> ChatMessage:
        return cls(role="tool", content=ToolResponse(call_id=call_id, content=content))


@dataclass(slots=True)
class ChatRequest:
    messages: list[ChatMessage] = field(default_factory=list)
    system: str | None = None
    tools: list[Tool] = field(default_factory=list)

    @classmethod
    def from_user(cls, text: str) -> ChatRequest:
        return cls(messages=[ChatMessage.user(text)])

    def with_system(self, system: str) -> ChatRequest:
        return replace(self, system=system)

    def append_message(self, message: ChatMessage) -> ChatRequest:
        return replace(self, messages=[*self.messages, message])


@dataclass(frozen=True, slots=True)
class ChatOptions:
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    stop_sequences: tuple[str, ...] | None = None
    reasoning_effort: str | None = None
    capture_content: bool | None = None
    capture_reasoning_content: bool | None = None
    capture_usage: bool | None = None
    capture_tool_calls: bool | None = None
    extra_headers: dict[str, str] | None = None

    def merged_over(self, defaults: ChatOptions | None) -> ChatOptions:
        """Return these options with unset fields taken from ``defaults``."""
        if defaults is None:
            return self
        values = {}
        for item in fields(self):
            own = getattr(self, item.name)
            values[item.name] = own if own is not None else getattr(defaults, item.name)
        return ChatOptions(**values)


@dataclass(slots=True)
class Usage:
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None
    reasoning_tokens: int | None = None

    def __post_init__(self) -> None:
        if (
            self.total_tokens is None
            and self.prompt_tokens is not None
            and self.completion_tokens is not None
        ):
            self.total_tokens = self.prompt_tokens + self.completion_tokens


@dataclass(slots=True)
class ChatResponse:
    model: ModelIdentity
    content: list[str] = field(default_factory=list)
    reasoning_content: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)
    finish_reason: str | None = None
    provider_model_name: str | None = None

    def first_text(self) -> str | None:
        return self.content[0] if self.content else None

    def joined_text(self) -> str | None:
        return "".join(self.content) if self.content else None
