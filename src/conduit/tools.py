"""Tool registry and execution strategies.

Tools are plain callables invoked with keyword arguments (``fn(**args)``).
Coroutine functions are awaited; sync functions run inline or, under the
deferred strategy, in a worker thread.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import inspect
import logging
from typing import TYPE_CHECKING, Any, Protocol

from conduit.errors import ToolError, ToolNotFoundError

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from conduit.config import ToolConfig
    from conduit.response import ToolCall

    ToolFn = Callable[..., Any]

logger = logging.getLogger(__name__)

# Job metadata carried alongside deferred arguments; never reaches the tool.
_RESERVED_ARGS = ("__name", "__parallel")


async def _invoke(fn: ToolFn, args: dict[str, Any], *, in_thread: bool = False) -> Any:
    if inspect.iscoroutinefunction(fn):
        return await fn(**args)
    result = await asyncio.to_thread(fn, **args) if in_thread else fn(**args)
    if inspect.isawaitable(result):
        return await result
    return result


@dataclass(frozen=True)
class PendingToolResult:
    """Placeholder for a fire-and-forget deferred tool job."""

    tool: str
    task: asyncio.Task[Any]

    @property
    def done(self) -> bool:
        return self.task.done()

    def to_dict(self) -> dict[str, Any]:
        return {"queued": True, "tool": self.tool}


class ToolExecutor(Protocol):
    """Strategy for running one registered tool."""

    @property
    def concurrent(self) -> bool:
        """Whether one round's calls may run concurrently."""
        ...

    async def run(self, name: str, fn: ToolFn, args: dict[str, Any]) -> Any:
        """Run ``fn`` and return its output (or a pending placeholder)."""
        ...


class InlineExecutor:
    """Run each tool in the caller's task."""

    concurrent = False

    async def run(self, name: str, fn: ToolFn, args: dict[str, Any]) -> Any:
        return await _invoke(fn, args)


class DeferredExecutor:
    """Dispatch each tool as an asyncio task.

    With ``wait=False`` the call returns a ``PendingToolResult`` immediately and
    the job finishes in the background; ``drain()`` awaits whatever is left.
    """

    def __init__(self, *, wait: bool = False, parallel: bool = False) -> None:
        self.wait = wait
        self.parallel = parallel
        self._pending: set[asyncio.Task[Any]] = set()

    @property
    def concurrent(self) -> bool:
        return self.wait and self.parallel

    @property
    def pending(self) -> frozenset[asyncio.Task[Any]]:
        return frozenset(self._pending)

    async def run(self, name: str, fn: ToolFn, args: dict[str, Any]) -> Any:
        job_args = {**args, "__name": name, "__parallel": self.parallel}
        task = asyncio.create_task(self._job(fn, job_args), name=f"conduit-tool-{name}")
        self._pending.add(task)
        task.add_done_callback(self._finished)
        if self.wait:
            return await task
        return PendingToolResult(tool=name, task=task)

    async def drain(self) -> list[Any]:
        """Await every outstanding job; failures are returned, not raised."""
        if not self._pending:
            return []
        return await asyncio.gather(*self._pending, return_exceptions=True)

    @staticmethod
    async def _job(fn: ToolFn, job_args: dict[str, Any]) -> Any:
        name = job_args.get("__name")
        args = {k: v for k, v in job_args.items() if k not in _RESERVED_ARGS}
        logger.debug("Deferred tool %s started (parallel=%s)", name, job_args.get("__parallel"))
        return await _invoke(fn, args, in_thread=True)

    def _finished(self, task: asyncio.Task[Any]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None and not self.wait:
            logger.warning("Deferred tool %s failed: %s", task.get_name(), exc)


def make_executor(config: ToolConfig) -> ToolExecutor:
    """Select the execution strategy configured in ``ToolConfig.mode``."""
    if config.mode == "deferred":
        return DeferredExecutor(wait=config.wait, parallel=config.parallel)
    return InlineExecutor()


class ToolRegistry:
    """Name-to-callable mapping with optional JSON schemas for the provider."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolFn] = {}
        self._schemas: dict[str, dict[str, Any]] = {}

    def register(
        self, name: str, fn: ToolFn, schema: dict[str, Any] | None = None
    ) -> ToolFn:
        if not isinstance(name, str) or not name.strip():
            raise ToolError("Tool name must be a non-empty string")
        if not callable(fn):
            raise ToolError(
                f"Tool {name!r} must be callable",
                hint="Pass a function or coroutine function.",
            )
        if name in self._tools:
            logger.debug("Replacing registered tool %s", name)
        self._tools[name] = fn
        if schema is not None:
            self._schemas[name] = dict(schema)
        else:
            self._schemas.pop(name, None)
        return fn

    def has(self, name: str) -> bool:
        return name in self._tools

    def get_schema(self, name: str) -> dict[str, Any] | None:
        schema = self._schemas.get(name)
        return dict(schema) if schema is not None else None

    def schemas(self) -> list[dict[str, Any]]:
        return [dict(s) for s in self._schemas.values()]

    def names(self) -> list[str]:
        return list(self._tools)

    def _lookup(self, name: str) -> ToolFn:
        fn = self._tools.get(name)
        if fn is None:
            raise ToolNotFoundError(name)
        return fn

    async def call(self, name: str, args: dict[str, Any] | None = None) -> Any:
        """Invoke a tool directly in the current task."""
        return await _invoke(self._lookup(name), dict(args or {}))

    async def execute(
        self, name: str, args: dict[str, Any] | None, *, executor: ToolExecutor
    ) -> Any:
        return await executor.run(name, self._lookup(name), dict(args or {}))

    async def execute_all(
        self, calls: Sequence[ToolCall], *, executor: ToolExecutor
    ) -> list[dict[str, Any]]:
        """Run one round of tool calls and tag each output with its call id.

        Tool failures become ``{"error": ..., "tool": name}`` outputs so the
        model can see them; cancellation still propagates.
        """
        if executor.concurrent and len(calls) > 1:
            return list(await asyncio.gather(*(self._run_one(c, executor) for c in calls)))
        return [await self._run_one(c, executor) for c in calls]

    async def _run_one(self, call: ToolCall, executor: ToolExecutor) -> dict[str, Any]:
        try:
            output = await self.execute(call.name, call.arguments, executor=executor)
        except ToolNotFoundError:
            logger.warning("Model requested unregistered tool %s", call.name)
            output = {"error": "Tool not registered", "tool": call.name}
        except Exception as exc:
            logger.warning("Tool %s failed: %s", call.name, exc)
            output = {"error": str(exc), "tool": call.name}
        if isinstance(output, PendingToolResult):
            output = output.to_dict()
        return {"name": call.name, "output": output, "tool_call_id": call.id}
