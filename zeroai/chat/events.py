from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from zeroai.chat.types import ToolCall, Usage
from zeroai.errors import ZeroAIError


@dataclass(frozen=True, slots=True)
class StreamStart:
    pass


@dataclass(frozen=True, slots=True)
class StreamChunk:
    content: str


@dataclass(frozen=True, slots=True)
class ReasoningChunk:
    content: str


@dataclass(frozen=True, slots=True)
class ToolCallChunk:
    """A tool call delta; ``fn_arguments`` holds a raw JSON fragment until the end."""

    call_id: str
    fn_name: str
    fn_arguments: str = ""
    index: int = 0


@dataclass(frozen=True, slots=True)
class StreamEnd:
    finish_reason: str | None = None
    usage: Usage | None = None
    captured_usage: Usage | None = None
    captured_content: str | None = None
    captured_reasoning_content: str | None = None
    captured_tool_calls: list[ToolCall] | None = field(default=None)


@dataclass(frozen=True, slots=True)
class StreamError:
    error: ZeroAIError


ChatStreamEvent = Union[
    StreamStart,
    StreamChunk,
    ReasoningChunk,
    ToolCallChunk,
    StreamEnd,
    StreamError,
]
