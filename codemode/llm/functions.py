"""LLM call functions: the single prompt -> text shape every stage uses."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import Path
from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage

logger = logging.getLogger(__name__)

LLMFunction = Callable[[str], Awaitable[str]]


def _content_to_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(str(block.get("text", "")))
        return "".join(parts)
    return str(content)


def chat_model_function(model: Any) -> LLMFunction:
    """Adapt a LangChain chat model (or runnable) into an ``LLMFunction``."""

    async def _call(prompt: str) -> str:
        response = await model.ainvoke([HumanMessage(content=prompt)])
        return _content_to_text(getattr(response, "content", response))

    if isinstance(model, BaseChatModel):
        _call.__name__ = f"llm_{type(model).__name__}"
    return _call


def _short_timestamp() -> str:
    return datetime.now().strftime("%Y%m%d_%H%M%S_%f")[:-3]


def with_prompt_log(llm: LLMFunction, log_path: str | Path, use_case: str) -> LLMFunction:
    """Wrap ``llm`` so every prompt and response is written under ``log_path/use_case``.

    Transcript write failures are logged and ignored; LLM failures are
    recorded as ``ERROR: ...`` responses and re-raised.
    """
    use_case_dir = Path(log_path) / use_case
    counter = 0

    def _write(path: Path, text: str) -> None:
        try:
            use_case_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
        except OSError:
            logger.warning("Failed to write LLM transcript %s", path, exc_info=True)

    async def _logged(prompt: str) -> str:
        nonlocal counter
        counter += 1
        base = f"{_short_timestamp()}_call{counter}"
        _write(use_case_dir / f"{base}_prompt.txt", prompt)
        try:
            response = await llm(prompt)
        except Exception as exc:
            _write(use_case_dir / f"{base}_response.txt", f"ERROR: {exc}")
            raise
        _write(use_case_dir / f"{base}_response.txt", response)
        return response

    return _logged
