"""Naming helpers: tool paths -> canonical call names."""

from __future__ import annotations

import re
from collections.abc import Iterable

from codemode.catalog import PATH_SEPARATOR
from codemode.exceptions import CallNameCollisionError


_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_MULTI_US = re.compile(r"_+")


def sanitize_segment(value: str) -> str:
    """Normalize a path segment to `a-z0-9_`."""
    v = (value or "").strip().lower()
    v = _NON_ALNUM.sub("_", v)
    v = _MULTI_US.sub("_", v).strip("_")
    return v or "tool"


def canonical_call_name(path: str) -> str:
    """Compute the call name for a tool path.

    ``slack.chat.post-message`` -> ``SLACK_CHAT_POST_MESSAGE``
    """
    name = "_".join(sanitize_segment(part) for part in path.split(PATH_SEPARATOR)).upper()
    if name[0].isdigit():
        name = f"T_{name}"
    return name


def params_type_name(call_name: str) -> str:
    """Name of the parameter TypedDict for a call name.

    ``SLACK_CHAT_POST_MESSAGE`` -> ``SlackChatPostMessageParams``
    """
    words = [w for w in call_name.lower().split("_") if w]
    return "".join(w[:1].upper() + w[1:] for w in words) + "Params"


def assign_call_names(paths: Iterable[str]) -> dict[str, str]:
    """Map each path to its call name, rejecting collisions."""
    names: dict[str, str] = {}
    owners: dict[str, list[str]] = {}
    for path in paths:
        name = canonical_call_name(path)
        names[path] = name
        owners.setdefault(name, []).append(path)

    collisions = {name: ps for name, ps in owners.items() if len(ps) > 1}
    if collisions:
        raise CallNameCollisionError(collisions)
    return names
