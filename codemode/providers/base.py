"""Tool provider contract: something that can produce a catalog of live tools."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from codemode.catalog import Catalog, Tool


@dataclass(frozen=True, slots=True)
class ToolFilterOptions:
    """Narrow what a provider returns.

    ``toolkits`` selects apps/servers by name (e.g. ``["slack", "gmail"]``);
    ``limit`` caps the number of tools fetched per toolkit.
    """

    toolkits: tuple[str, ...] = field(default_factory=tuple)
    limit: int | None = None


@runtime_checkable
class ToolProvider(Protocol):
    async def get_tools(self, options: ToolFilterOptions | None = None) -> Catalog:
        """Return the provider's tools as a hierarchical catalog."""
        ...

    async def get_tool(self, path: str) -> Tool | None:
        """Return the tool at a dotted path, or ``None``."""
        ...
