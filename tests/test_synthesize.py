"""Tests for signature synthesis."""

from __future__ import annotations

import ast

import pytest

from codemode.catalog import Catalog, Tool, ToolParameter
from codemode.exceptions import CallNameCollisionError
from codemode.steps.synthesize import classify_kind, synthesize_signatures


@pytest.mark.parametrize(
    "kind,expected",
    [
        ("string", "str"),
        ("integer", "int"),
        ("number", "float"),
        ("boolean", "bool"),
        ("array of strings", "list[Any]"),
        ("array", "list[Any]"),
        ("object", "dict[str, Any]"),
        ("string|null", "str"),
        ("", "Any"),
        ("whatever", "Any"),
    ],
)
def test_classify_kind(kind, expected):
    assert classify_kind(kind) == expected


def test_signatures_for_catalog(slack_catalog):
    sigs = synthesize_signatures(slack_catalog)

    assert sigs.call_names == {
        "slack.list.all_channels": "SLACK_LIST_ALL_CHANNELS",
        "slack.chat.post_message": "SLACK_CHAT_POST_MESSAGE",
        "gmail.send_email": "GMAIL_SEND_EMAIL",
    }
    post = sigs.signatures["slack.chat.post_message"]
    assert post.params_type == "SlackChatPostMessageParams"
    assert "class SlackChatPostMessageParams(TypedDict):" in post.type_code
    assert "    channel: str" in post.type_code
    assert post.declaration.startswith(
        "async def SLACK_CHAT_POST_MESSAGE(params: SlackChatPostMessageParams) -> Any: ..."
    )
    email = sigs.signatures["gmail.send_email"].type_code
    assert "    cc: NotRequired[list[Any]]" in email


def test_full_text_is_valid_python(slack_catalog):
    sigs = synthesize_signatures(slack_catalog)
    tree = ast.parse(sigs.full_text)
    names = {n.name for n in tree.body if isinstance(n, (ast.ClassDef, ast.AsyncFunctionDef))}
    assert set(sigs.call_names.values()) <= names


def test_synthesis_is_deterministic(slack_catalog):
    assert synthesize_signatures(slack_catalog).full_text == synthesize_signatures(slack_catalog).full_text


def test_non_identifier_parameters_use_functional_typeddict():
    catalog = Catalog.from_dict(
        {"api": {"get": Tool("get", "GET a thing", (ToolParameter("from", "string", required=True),))}}
    )
    type_code = synthesize_signatures(catalog).signatures["api.get"].type_code
    assert "ApiGetParams = TypedDict('ApiGetParams', {'from': str})" in type_code
    ast.parse(synthesize_signatures(catalog).full_text)


def test_tool_without_parameters():
    catalog = Catalog.from_dict({"clock": {"now": Tool("now", "Current time")}})
    sigs = synthesize_signatures(catalog)
    assert "class ClockNowParams(TypedDict):\n    pass" in sigs.types_code


def test_empty_catalog_has_no_text():
    sigs = synthesize_signatures(Catalog())
    assert len(sigs) == 0
    assert sigs.full_text == ""


def test_collision_raises():
    catalog = Catalog.from_dict(
        {"a": {"b_c": Tool("x", "x")}, "a_b": {"c": Tool("y", "y")}}
    )
    with pytest.raises(CallNameCollisionError):
        synthesize_signatures(catalog)
