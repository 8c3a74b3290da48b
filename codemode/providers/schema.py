"""Limited JSON Schema handling for provider tool inputs.

Two directions:
- ``parameters_from_json_schema``: provider input schema -> ``ToolParameter``s
- ``args_model``: ``ToolParameter``s -> pydantic model used to validate calls
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, create_model

from codemode.catalog import ToolParameter


def parameters_from_json_schema(schema: dict[str, Any] | None) -> tuple[ToolParameter, ...]:
    """Convert ``type=object`` schema properties into tool parameters.

    Missing ``type`` defaults to ``"string"``; missing descriptions become
    ``"Parameter <name>"``.
    """
    schema = schema or {}
    props = schema.get("properties") or {}
    required = set(schema.get("required") or [])

    params: list[ToolParameter] = []
    if isinstance(props, dict):
        for name, prop_schema in props.items():
            if not isinstance(prop_schema, dict):
                prop_schema = {}
            kind = prop_schema.get("type") or "string"
            if isinstance(kind, list):
                kind = "|".join(str(k) for k in kind)
            if kind == "array":
                items = prop_schema.get("items")
                if isinstance(items, dict) and isinstance(items.get("type"), str):
                    kind = f"array of {items['type']}"
            params.append(
                ToolParameter(
                    name=str(name),
                    kind=str(kind),
                    description=str(prop_schema.get("description") or f"Parameter {name}"),
                    required=name in required,
                    default=prop_schema.get("default"),
                )
            )
    return tuple(params)


def _primitive_type(kind: str) -> Any:
    from codemode.steps.synthesize import KIND_TYPES, classify_kind

    return KIND_TYPES.get(classify_kind(kind), Any)


def args_model(model_name: str, parameters: tuple[ToolParameter, ...]) -> type[BaseModel]:
    """Build a pydantic model that validates call arguments for a tool.

    Required parameters are required fields; optional ones accept ``None``
    and default to the declared default. Unknown keys are allowed so
    providers with loose schemas still receive everything the caller sent.
    Fields are keyed positionally and aliased to the parameter name, since
    provider names need not be valid (or non-reserved) attribute names.
    """
    fields: dict[str, Any] = {}
    for i, param in enumerate(parameters):
        py_type = _primitive_type(param.kind)
        if param.required:
            fields[f"p{i}"] = (py_type, Field(..., alias=param.name, description=param.description))
        else:
            fields[f"p{i}"] = (
                Optional[py_type],
                Field(param.default, alias=param.name, description=param.description),
            )

    config = ConfigDict(extra="allow", protected_namespaces=())
    return create_model(model_name, __config__=config, **fields)  # type: ignore[call-overload]
