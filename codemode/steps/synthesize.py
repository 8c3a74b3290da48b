"""Interface synthesis: typed call signatures for the filtered tools.

For every tool path this produces

- a ``TypedDict`` describing the tool's parameter object, with
  ``NotRequired`` fields for optional parameters, and
- an ``async def CALL_NAME(params: CallNameParams) -> Any: ...`` forward
  declaration.

Only type shape is produced here. The same call names are used later by the
compile verifier (as declarations) and by the execution wirer (as binding
names).
"""

from __future__ import annotations

import keyword
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from codemode.catalog import Catalog, Tool, ToolParameter, flatten
from codemode.exceptions import CallNameCollisionError
from codemode.naming import assign_call_names, params_type_name

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "from typing import Any, NotRequired, TypedDict\n"

# Annotation text -> runtime type, for callers that validate at runtime.
KIND_TYPES: dict[str, Any] = {
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "list[Any]": list[Any],
    "dict[str, Any]": dict[str, Any],
    "Any": Any,
}

_KIND_TOKEN = re.compile(r"[a-z]+")

# Checked in order: container kinds win over scalar kinds ("array of strings").
_KIND_CLASSES: tuple[tuple[frozenset[str], str], ...] = (
    (frozenset({"array", "list", "tuple"}), "list[Any]"),
    (frozenset({"object", "dict", "map", "record"}), "dict[str, Any]"),
    (frozenset({"string", "str", "text"}), "str"),
    (frozenset({"integer", "int", "long"}), "int"),
    (frozenset({"number", "float", "double", "decimal", "numeric"}), "float"),
    (frozenset({"boolean", "bool"}), "bool"),
)


def classify_kind(kind: str) -> str:
    """Map a provider's free-text parameter type to a Python annotation."""
    tokens = set(_KIND_TOKEN.findall((kind or "").lower()))
    for names, annotation in _KIND_CLASSES:
        if tokens & names:
            return annotation
    return "Any"


@dataclass(frozen=True, slots=True)
class ToolSignature:
    """Synthesized signature of one tool."""

    path: str
    call_name: str
    params_type: str
    type_code: str
    declaration: str

    @property
    def fragment(self) -> str:
        return f"{self.type_code}\n\n{self.declaration}"


@dataclass(slots=True)
class SignatureSet:
    """All signatures for a filtered catalog, plus the rendered source text."""

    signatures: dict[str, ToolSignature] = field(default_factory=dict)

    @property
    def call_names(self) -> dict[str, str]:
        return {path: sig.call_name for path, sig in self.signatures.items()}

    @property
    def fragments(self) -> dict[str, str]:
        return {path: sig.fragment for path, sig in self.signatures.items()}

    @property
    def types_code(self) -> str:
        """Header plus every parameter TypedDict (no function declarations)."""
        if not self.signatures:
            return ""
        blocks = [sig.type_code for sig in self.signatures.values()]
        return SIGNATURE_HEADER + "\n\n" + "\n\n\n".join(blocks) + "\n"

    @property
    def declarations_code(self) -> str:
        if not self.signatures:
            return ""
        return "\n\n".join(sig.declaration for sig in self.signatures.values()) + "\n"

    @property
    def full_text(self) -> str:
        """Types and forward declarations, as shown to the implementer and the verifier."""
        if not self.signatures:
            return ""
        return f"{self.types_code}\n\n{self.declarations_code}"

    def __len__(self) -> int:
        return len(self.signatures)


def _comment(text: str, indent: str = "") -> list[str]:
    return [f"{indent}# {line}".rstrip() for line in (text or "").splitlines() or [""]]


def _param_doc(param: ToolParameter) -> str:
    flag = "required" if param.required else "optional"
    doc = f"{param.name}: {param.description} ({param.kind}, {flag}"
    if param.default is not None:
        doc += f", default {param.default!r}"
    return doc + ")"


def _field_type(param: ToolParameter) -> str:
    annotation = classify_kind(param.kind)
    return annotation if param.required else f"NotRequired[{annotation}]"


def _type_code(tool: Tool, path: str, call_name: str, type_name: str) -> str:
    lines = [f"# Tool: {path}", f"# Function name: {call_name}"]
    lines += _comment(tool.description)
    for param in tool.parameters:
        lines += _comment(_param_doc(param))

    names = [p.name for p in tool.parameters]
    if all(n.isidentifier() and not keyword.iskeyword(n) for n in names):
        lines.append(f"class {type_name}(TypedDict):")
        if not tool.parameters:
            lines.append("    pass")
        for param in tool.parameters:
            lines.append(f"    {param.name}: {_field_type(param)}")
    else:
        members = ", ".join(f"{p.name!r}: {_field_type(p)}" for p in tool.parameters)
        lines.append(f"{type_name} = TypedDict({type_name!r}, {{{members}}})")
    return "\n".join(lines)


def _declaration(tool: Tool, call_name: str, type_name: str) -> str:
    summary = (tool.description or tool.name).strip().splitlines()
    head = summary[0] if summary else tool.name
    return f"async def {call_name}(params: {type_name}) -> Any: ...  # {head}"


def synthesize_signatures(catalog: Catalog) -> SignatureSet:
    """Synthesize signatures for every tool in ``catalog``.

    Raises
    ------
    CallNameCollisionError
        If two paths produce the same call name or parameter type name.
    """
    pairs = flatten(catalog)
    logger.info("Synthesizing signatures for %d tools", len(pairs))
    if not pairs:
        logger.warning("No tools to synthesize signatures for")
        return SignatureSet()

    call_names = assign_call_names(path for path, _ in pairs)

    type_owners: dict[str, list[str]] = {}
    for path, name in call_names.items():
        type_owners.setdefault(params_type_name(name), []).append(path)
    type_collisions = {name: ps for name, ps in type_owners.items() if len(ps) > 1}
    if type_collisions:
        raise CallNameCollisionError(type_collisions)

    result = SignatureSet()
    for path, tool in pairs:
        call_name = call_names[path]
        type_name = params_type_name(call_name)
        result.signatures[path] = ToolSignature(
            path=path,
            call_name=call_name,
            params_type=type_name,
            type_code=_type_code(tool, path, call_name, type_name),
            declaration=_declaration(tool, call_name, type_name),
        )
        logger.debug("Synthesized %s -> %s()", path, call_name)

    logger.info(
        "Synthesized %d signatures (%d characters)", len(result), len(result.full_text)
    )
    return result
