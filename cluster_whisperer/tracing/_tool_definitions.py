"""Span processor adding ``gen_ai.tool.definitions`` to LLM chat spans.

LLM instrumentation records the chat request but not the tool schemas the model
was offered. This processor sets them on every chat span when it starts, as an
OpenAI-style function list built from each tool's pydantic input model. The
JSON is computed once and cached.
"""

import json
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from opentelemetry.context import Context
from opentelemetry.sdk.trace import Span, SpanProcessor
from pydantic import BaseModel

from cluster_whisperer.logging import get_logger

from ._models import ATTR_GEN_AI_TOOL_DEFINITIONS

logger = get_logger(__name__)

DEFAULT_CHAT_SPAN_NAMES = ("anthropic.chat",)


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    """Name, description and input schema of a tool offered to the model."""

    name: str
    description: str
    input_model: type[BaseModel]

    def to_openai_function(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_model.model_json_schema(),
            },
        }


class ToolDefinitionsProcessor(SpanProcessor):
    """Sets ``gen_ai.tool.definitions`` on spans named in ``span_names``."""

    def __init__(self, tools: Iterable[ToolDefinition], *, span_names: Iterable[str] = DEFAULT_CHAT_SPAN_NAMES) -> None:
        self._tools = tuple(tools)
        self._span_names = frozenset(span_names)
        self._definitions_json: str | None = None

    def definitions_json(self) -> str:
        """JSON array of the tool definitions (cached after the first call)."""
        if self._definitions_json is None:
            self._definitions_json = json.dumps([tool.to_openai_function() for tool in self._tools])
        return self._definitions_json

    def on_start(self, span: Span, parent_context: Context | None = None) -> None:
        if not self._tools or span.name not in self._span_names:
            return
        try:
            span.set_attribute(ATTR_GEN_AI_TOOL_DEFINITIONS, self.definitions_json())
        except Exception as e:
            logger.debug(f"ToolDefinitionsProcessor.on_start failed: {e}")
