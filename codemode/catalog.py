"""Tool catalog: tools, nested catalogs, and path helpers.

A catalog is a recursive namespace. Every value is either a ``Tool`` (a leaf)
or a nested ``Catalog``; nothing else is allowed, so the helpers below match
on the two node types instead of probing objects for an ``invoke`` attribute.

A tool path is the dot-joined sequence of keys from the root to a tool, e.g.
``slack.chat.post_message``. Paths are the addressing scheme used by every
pipeline stage.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from codemode.exceptions import CatalogError

logger = logging.getLogger(__name__)

PATH_SEPARATOR = "."

InvokeFn = Callable[[dict[str, Any]], Awaitable[Any]]


@dataclass(frozen=True, slots=True)
class ToolParameter:
    """One declared parameter of a tool.

    ``kind`` is the provider's free-text type ("string", "integer",
    "array", ...); it is classified into a Python type only when signatures
    are synthesized.
    """

    name: str
    kind: str = "string"
    description: str = ""
    required: bool = False
    default: Any = None


@dataclass(frozen=True, slots=True)
class Tool:
    """An atomic callable unit supplied by a tool provider."""

    name: str
    description: str
    parameters: tuple[ToolParameter, ...] = ()
    invoke: InvokeFn | None = field(default=None, compare=False, repr=False)

    async def __call__(self, arguments: dict[str, Any]) -> Any:
        if self.invoke is None:
            raise NotImplementedError(f"Tool {self.name!r} has no invoke capability")
        return await self.invoke(arguments)


class Catalog(dict[str, "Tool | Catalog"]):
    """A recursive mapping of keys to tools or nested catalogs.

    Keys are single path segments; a key containing ``PATH_SEPARATOR`` would
    yield paths that ``resolve`` cannot walk, so it is rejected on insert.
    """

    def __setitem__(self, key: str, value: Tool | Catalog) -> None:
        if not isinstance(key, str):
            raise CatalogError(str(key), f"key must be a string, got {type(key).__name__}")
        if PATH_SEPARATOR in key:
            raise CatalogError(key, f"key must not contain {PATH_SEPARATOR!r}")
        super().__setitem__(key, value)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Catalog:
        """Build a catalog from nested plain mappings whose leaves are tools."""
        catalog = cls()
        for key, value in data.items():
            match value:
                case Tool():
                    catalog[key] = value
                case Catalog():
                    catalog[key] = value
                case Mapping():
                    catalog[key] = cls.from_dict(value)
                case _:
                    raise CatalogError(key, f"expected Tool or mapping, got {type(value).__name__}")
        return catalog


def _join(prefix: str, key: str) -> str:
    return f"{prefix}{PATH_SEPARATOR}{key}" if prefix else key


def flatten(catalog: Catalog, prefix: str = "") -> list[tuple[str, Tool]]:
    """Return every ``(path, tool)`` pair in iteration order."""
    pairs: list[tuple[str, Tool]] = []
    for key, value in catalog.items():
        path = _join(prefix, key)
        match value:
            case Tool():
                pairs.append((path, value))
            case Catalog():
                pairs.extend(flatten(value, path))
            case _:
                raise CatalogError(path, f"expected Tool or Catalog, got {type(value).__name__}")
    return pairs


def list_tool_paths(catalog: Catalog) -> list[str]:
    """Return every tool path in the catalog."""
    return [path for path, _ in flatten(catalog)]


def count_tools(catalog: Catalog) -> int:
    return len(flatten(catalog))


def resolve(catalog: Catalog, path: str) -> Tool | None:
    """Look up a tool by dotted path.

    Returns ``None`` when a segment is missing, when the path runs past a
    tool, or when it ends on a sub-catalog.
    """
    current: Tool | Catalog = catalog
    for part in path.split(PATH_SEPARATOR):
        match current:
            case Tool():
                return None
            case Catalog() if part in current:
                current = current[part]
            case _:
                return None
    return current if isinstance(current, Tool) else None


def reconstruct(catalog: Catalog, selected_paths: Iterable[str]) -> Catalog:
    """Rebuild only the part of the hierarchy needed to host ``selected_paths``.

    Paths that do not resolve to a tool in ``catalog`` are skipped. Tools are
    shared with the original catalog, not copied.
    """
    rebuilt = Catalog()
    for path in selected_paths:
        tool = resolve(catalog, path)
        if tool is None:
            logger.debug("Skipping unresolvable path %s", path)
            continue

        *parents, leaf = path.split(PATH_SEPARATOR)
        node = rebuilt
        for part in parents:
            child = node.get(part)
            if not isinstance(child, Catalog):
                child = Catalog()
                node[part] = child
            node = child
        node[leaf] = tool
    return rebuilt


def tools_in_category(catalog: Catalog, category_path: str) -> dict[str, Tool]:
    """Return the tools directly under ``category_path`` (not recursive)."""
    current: Tool | Catalog = catalog
    for part in category_path.split(PATH_SEPARATOR):
        if not isinstance(current, Catalog) or part not in current:
            return {}
        current = current[part]

    if not isinstance(current, Catalog):
        return {}
    return {key: value for key, value in current.items() if isinstance(value, Tool)}


def catalog_structure(catalog: Catalog) -> dict[str, Any]:
    """Return the key hierarchy with ``"<tool>"`` in place of each tool."""
    structure: dict[str, Any] = {}
    for key, value in catalog.items():
        match value:
            case Tool():
                structure[key] = "<tool>"
            case Catalog():
                structure[key] = catalog_structure(value)
    return structure
