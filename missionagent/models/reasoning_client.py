"""
Reasoning Client - structured requests to the reasoning service.

Wraps the chat completion call with the planning, reflection, tool
selection and completion prompts and turns the model's JSON answers into
dictionaries and small result types.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..core.config_manager import get_config
from ..missions.mission_types import ExecutionResult, Mission, Plan, ReflectionType, Task
from .model_caller import call_chat_async, call_embeddings_async, extract_message_content
from .prompts import (
    COMPLETION_SYSTEM_PROMPT,
    DECOMPOSITION_SYSTEM_PROMPT,
    PLANNING_SYSTEM_PROMPT,
    REFLECTION_FORMAT,
    REFLECTION_PROMPTS,
    REVISION_INSTRUCTIONS,
    TOOL_SELECTION_SYSTEM_PROMPT,
)

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_THINK_RE = re.compile(r"<think>[\s\S]*?</think>", re.IGNORECASE)


class ReasoningResponseError(Exception):
    """Raised when the reasoning service answer cannot be parsed."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


def parse_json_response(response: str) -> Dict[str, Any]:
    """
    Parse the JSON object in a model answer.

    Tolerates reasoning blocks, markdown code fences and prose around the
    object.

    Raises:
        ReasoningResponseError: If no JSON object can be decoded
    """
    text = _THINK_RE.sub("", response or "").strip()

    candidates = [text]
    candidates.extend(m.group(1).strip() for m in _FENCE_RE.finditer(text))
    match = re.search(r"\{[\s\S]*\}", text)
    if match:
        candidates.append(match.group())

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data

    raise ReasoningResponseError("Reasoning service returned no JSON object", raw=response or "")


def pick(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """First present key among snake_case / camelCase spellings."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _as_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


@dataclass
class ReflectionAnalysis:
    insights: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    confidence: float = 0.5
    reasoning: str = ""


@dataclass
class ToolSelection:
    tool_name: Optional[str]
    parameters: Dict[str, Any] = field(default_factory=dict)
    reasoning: str = ""
    confidence: float = 0.5


@dataclass
class CompletionVerdict:
    """Raw verdict of the completion judge (percentage as a fraction)."""
    completed: bool
    completion_percentage: float
    reasoning: str = ""
    remaining_work: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    confidence: float = 0.5


class ReasoningClient:
    """
    Client for the structured reasoning requests.

    Usage:
        client = ReasoningClient()
        plan_data = await client.generate_plan(mission, tools=registry.describe())
    """

    def __init__(self, model: Optional[str] = None, embedding_model: Optional[str] = None):
        llm = get_config().llm
        self.model = model or llm.chat_model
        self.embedding_model = embedding_model or llm.embedding_model

    async def _ask(self, kind: str, system: str, user: str) -> Dict[str, Any]:
        temperature = get_config().llm.get_temperature(kind)
        response = await call_chat_async(
            [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            model=self.model,
            temperature=temperature,
        )
        content = extract_message_content(response)
        logger.debug(f"[ReasoningClient] {kind} answer: {content[:200]}")
        return parse_json_response(content)

    async def generate_plan(
        self,
        mission: Mission,
        context: Optional[str] = None,
        tools: Optional[List[Dict[str, Any]]] = None,
        previous_plan: Optional[Plan] = None,
        feedback: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Ask for a plan (or a revision of ``previous_plan``).

        Returns:
            The decoded plan object (title, description, tasks, reasoning, confidence)
        """
        parts = [
            f"Mission: {mission.title}",
            f"Description: {mission.description}",
            f"Priority: {mission.priority}",
        ]
        if tools:
            parts.append("Available tools:\n" + json.dumps(tools, indent=2))
        if context:
            parts.append(f"Context: {context}")
        if previous_plan is not None:
            parts.append(REVISION_INSTRUCTIONS)
            parts.append("Current plan:\n" + json.dumps(previous_plan.to_dict(), indent=2, default=str))
            parts.append(f"Feedback: {feedback or ''}")

        data = await self._ask("planning", PLANNING_SYSTEM_PROMPT, "\n\n".join(parts))
        if not isinstance(data.get("tasks", []), list):
            raise ReasoningResponseError("Plan 'tasks' must be a list", raw=json.dumps(data))
        return data

    async def decompose_task(
        self,
        task: Task,
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        user = f"Task: {json.dumps(task.to_dict(), indent=2, default=str)}"
        if tools:
            user += "\n\nAvailable tools:\n" + json.dumps(tools, indent=2)
        data = await self._ask("planning", DECOMPOSITION_SYSTEM_PROMPT, user)
        if not isinstance(data.get("tasks", []), list):
            raise ReasoningResponseError("Decomposition 'tasks' must be a list", raw=json.dumps(data))
        return data

    async def reflect(self, reflection_type: str, data: Any) -> ReflectionAnalysis:
        """Ask for an analysis of the given kind (a ReflectionType value)."""
        reflection_type = ReflectionType(reflection_type).value
        system = f"{REFLECTION_PROMPTS[reflection_type]}\n\n{REFLECTION_FORMAT}"
        answer = await self._ask("reflection", system, json.dumps(data, indent=2, default=str))
        return ReflectionAnalysis(
            insights=_as_str_list(answer.get("insights")),
            recommendations=_as_str_list(answer.get("recommendations")),
            confidence=_as_float(answer.get("confidence"), 0.5),
            reasoning=str(answer.get("reasoning", "")),
        )

    async def select_tool(self, task: Task, tools: List[Dict[str, Any]]) -> ToolSelection:
        """Ask which of ``tools`` fits ``task``."""
        listing = "\n".join(f"- {t['name']}: {t.get('description', '')}" for t in tools)
        system = TOOL_SELECTION_SYSTEM_PROMPT.format(tools=listing)
        answer = await self._ask(
            "tool_selection",
            system,
            f"Task: {json.dumps(task.to_dict(), indent=2, default=str)}",
        )
        params = pick(answer, "parameters", "tool_params", "toolParams", default={})
        return ToolSelection(
            tool_name=pick(answer, "tool_name", "selectedTool", "toolName"),
            parameters=params if isinstance(params, dict) else {},
            reasoning=str(answer.get("reasoning", "")),
            confidence=_as_float(answer.get("confidence"), 0.5),
        )

    async def assess_completion(self, mission: Mission, result: ExecutionResult) -> CompletionVerdict:
        """Ask whether the mission goals were met."""
        user = (
            f"Mission: {json.dumps(mission.to_dict(), indent=2)}\n\n"
            f"Result: {json.dumps(result.to_dict(), indent=2, default=str)}"
        )
        answer = await self._ask("assessment", COMPLETION_SYSTEM_PROMPT, user)
        return CompletionVerdict(
            completed=bool(answer.get("completed", False)),
            completion_percentage=_as_float(
                pick(answer, "completion_percentage", "completionPercentage"), 0.0
            ),
            reasoning=str(answer.get("reasoning", "")),
            remaining_work=_as_str_list(pick(answer, "remaining_work", "remainingWork")),
            recommendations=_as_str_list(answer.get("recommendations")),
            confidence=_as_float(answer.get("confidence"), 0.5),
        )

    async def embed(self, text: str) -> List[float]:
        return await call_embeddings_async(text, model=self.embedding_model)
