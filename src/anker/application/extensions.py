"""
Named extensions invoked while (re)generating or rendering card content.

Each extension implements one capability, `invoke(input, context) -> str`.
The context is an explicit value passed along the call chain, so concurrent
invocations never share mutable state. Every failure surfaces as
ExtensionError.

The review CLI passes every side through `render-side` before showing it.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from anker.application.utils.text import strip_html_comments
from anker.domain.errors import ExtensionError
from anker.domain.models import CardId

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtensionContext:
    """Per-invocation context; never stored on the registry."""

    card_id: CardId | None = None
    deck_scope: str = ""
    now: datetime | None = None
    values: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class Extension(Protocol):
    async def invoke(self, input: str, context: ExtensionContext) -> str: ...


class FunctionExtension:
    """Adapts a plain (sync or async) callable to the Extension capability."""

    def __init__(self, func: Callable[[str, ExtensionContext], str | Awaitable[str]]):
        self._func = func

    async def invoke(self, input: str, context: ExtensionContext) -> str:
        result = self._func(input, context)
        if inspect.isawaitable(result):
            result = await result
        return result


class ExtensionRegistry:
    def __init__(self, timeout: float | None = None):
        self._extensions: dict[str, Extension] = {}
        self._timeout = timeout

    def register(self, name: str, extension: Extension | Callable) -> None:
        if not name:
            raise ValueError("Extension name must not be empty")
        if name in self._extensions:
            raise ValueError(f"Extension '{name}' is already registered")
        if not isinstance(extension, Extension):
            extension = FunctionExtension(extension)
        self._extensions[name] = extension

    def unregister(self, name: str) -> None:
        self._extensions.pop(name, None)

    def names(self) -> list[str]:
        return sorted(self._extensions)

    def __contains__(self, name: str) -> bool:
        return name in self._extensions

    async def invoke(self, name: str, input: str, context: ExtensionContext) -> str:
        """
        Run a named extension.

        Raises:
            ExtensionError: Unknown name, timeout, non-string result, or any
                exception raised by the extension.
        """
        extension = self._extensions.get(name)
        if extension is None:
            raise ExtensionError(name, "not registered")

        try:
            if self._timeout is not None:
                result = await asyncio.wait_for(extension.invoke(input, context), self._timeout)
            else:
                result = await extension.invoke(input, context)
        except asyncio.TimeoutError:
            raise ExtensionError(name, f"timed out after {self._timeout}s") from None
        except ExtensionError:
            raise
        except Exception as e:
            logger.error(f"Extension '{name}' failed for {context.card_id}: {e}")
            raise ExtensionError(name, str(e)) from e

        if not isinstance(result, str):
            raise ExtensionError(name, f"returned {type(result).__name__}, expected str")
        return result


# ---------- Built-in extensions ----------

RENDER_SIDE = "render-side"


def strip_comments(input: str, context: ExtensionContext) -> str:
    """Hide HTML comments (author notes) when a side is shown."""
    return strip_html_comments(input)


def default_registry(timeout: float | None = None) -> ExtensionRegistry:
    registry = ExtensionRegistry(timeout=timeout)
    registry.register(RENDER_SIDE, strip_comments)
    return registry
