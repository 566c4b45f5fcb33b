"""
Tool capability contract and registry.

A tool is anything with a unique ``name`` and an async
``execute(params, ctx) -> ToolResult``. BaseTool adds the shared helpers
(result construction, required-parameter checks); with_retry gives tools
capped exponential backoff around their own I/O.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Protocol,
    Tuple,
    Type,
    TypeVar,
    runtime_checkable,
)

from ..core.timeutil import utcnow

if TYPE_CHECKING:
    from ..execution.context import ExecutionContext

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ToolResult:
    """
    Result of one tool invocation.

    Attributes:
        success: Whether the tool achieved its goal
        data: JSON-compatible payload on success
        error: Error text on failure
        metadata: Tool name and timestamp, plus anything the tool adds
    """
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "data": self.data,
            "error": self.error,
            "metadata": self.metadata,
        }


@runtime_checkable
class Tool(Protocol):
    """Structural contract every registered tool satisfies."""

    name: str
    description: str

    async def execute(self, params: Dict[str, Any], ctx: "ExecutionContext") -> ToolResult:
        ...


def validate_params(params: Dict[str, Any], required: Iterable[str]) -> Optional[str]:
    """
    Check that every required parameter is present and not None.

    Returns:
        An error message for the first missing parameter, or None
    """
    for name in required:
        if params.get(name) is None:
            return f"Missing required parameter: {name}"
    return None


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
) -> T:
    """
    Await ``operation`` up to ``max_retries`` times.

    The delay before attempt n+1 is base_delay * 2**n, capped at max_delay.

    Args:
        operation: Zero-argument coroutine factory
        max_retries: Total number of attempts
        base_delay: First backoff delay in seconds
        max_delay: Upper bound for one delay
        retry_on: Exception types that trigger a retry

    Returns:
        The operation's result

    Raises:
        The last exception once all attempts failed
    """
    attempts = max(1, max_retries)

    for attempt in range(attempts - 1):
        try:
            return await operation()
        except retry_on as e:
            delay = min(base_delay * (2 ** attempt), max_delay)
            logger.warning(
                f"[Retry] Attempt {attempt + 1}/{attempts} failed: {e}. Retrying in {delay:.1f}s"
            )
            await asyncio.sleep(delay)

    return await operation()


class BaseTool(ABC):
    """
    Convenience base class for tools.

    Subclasses set ``name``, ``description``, ``parameters`` (a JSON-schema
    style description shown to the planner) and ``required_params``.
    """

    name: str = ""
    description: str = ""
    parameters: Dict[str, Any] = {}
    required_params: Tuple[str, ...] = ()

    @abstractmethod
    async def execute(self, params: Dict[str, Any], ctx: "ExecutionContext") -> ToolResult:
        """Run the tool."""

    def create_result(
        self,
        success: bool,
        data: Optional[Any] = None,
        error: Optional[str] = None,
    ) -> ToolResult:
        return ToolResult(
            success=success,
            data=data,
            error=error,
            metadata={"tool_name": self.name, "timestamp": utcnow().isoformat()},
        )

    def validate_params(self, params: Dict[str, Any]) -> Optional[str]:
        return validate_params(params, self.required_params)

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


class ToolRegistry:
    """
    Registry of tools keyed by unique name.
    """

    def __init__(self, tools: Optional[Iterable[Tool]] = None):
        self._tools: Dict[str, Tool] = {}
        for tool in tools or ():
            self.register(tool)

    def register(self, tool: Tool, replace: bool = False) -> None:
        """
        Register a tool.

        Raises:
            ValueError: If the name is empty or already taken (unless replace)
        """
        if not tool.name:
            raise ValueError("Tool name must not be empty")
        if tool.name in self._tools and not replace:
            raise ValueError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool
        logger.debug(f"[ToolRegistry] Registered tool: {tool.name}")

    def unregister(self, name: str) -> bool:
        return self._tools.pop(name, None) is not None

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def names(self) -> List[str]:
        return list(self._tools)

    def all(self) -> List[Tool]:
        return list(self._tools.values())

    def describe(self) -> List[Dict[str, Any]]:
        return [
            {
                "name": t.name,
                "description": t.description,
                "parameters": getattr(t, "parameters", {}),
            }
            for t in self._tools.values()
        ]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
