from __future__ import annotations

import pytest

from codemode.exceptions import CallNameCollisionError
from codemode.naming import assign_call_names, canonical_call_name, params_type_name, sanitize_segment


def test_sanitize_segment_basic():
    assert sanitize_segment("Gmail") == "gmail"
    assert sanitize_segment(" send-email ") == "send_email"
    assert sanitize_segment("a__b") == "a_b"
    assert sanitize_segment("") == "tool"


def test_canonical_call_name():
    assert canonical_call_name("slack.chat.post-message") == "SLACK_CHAT_POST_MESSAGE"
    assert canonical_call_name("slack.list.all_channels") == "SLACK_LIST_ALL_CHANNELS"
    assert canonical_call_name("3d.render") == "T_3D_RENDER"
    assert canonical_call_name("3d.render").isidentifier()


def test_params_type_name():
    assert params_type_name("SLACK_CHAT_POST_MESSAGE") == "SlackChatPostMessageParams"


def test_assign_call_names_is_deterministic():
    paths = ["slack.chat.post_message", "gmail.send_email"]
    assert assign_call_names(paths) == assign_call_names(list(paths))


def test_assign_call_names_rejects_collisions():
    with pytest.raises(CallNameCollisionError) as exc_info:
        assign_call_names(["slack.chat.post_message", "slack.chat_post.message", "gmail.send"])
    assert exc_info.value.collisions == {
        "SLACK_CHAT_POST_MESSAGE": ["slack.chat.post_message", "slack.chat_post.message"]
    }
