from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

logger = logging.getLogger(__name__)

__all__ = ["OpenAIScriptWriter", "ScriptWriter", "StaticScriptWriter", "build_script_prompt"]


def build_script_prompt(word_count: int, *, with_pause_markup: bool = False) -> str:
    """
    System prompt asking for a meditation script of roughly ``word_count`` words.
    """
    lines = [
        "You write short guided meditation scripts spoken by a calm narrator.",
        f"Write approximately {word_count} words. Do not exceed this length.",
        "Use short, complete sentences that each end with a period.",
        "Speak directly to the listener in the second person.",
        "Reply with the script text only: no title, no headings, no stage directions.",
    ]
    if with_pause_markup:
        lines.append('Mark pauses with <break time="X.Xs"/> tags of at most 3.0 seconds each.')
    else:
        lines.append("Do not include pause markers of any kind; pauses are added later.")
    return "\n".join(lines)


class ScriptWriter(ABC):
    """Produces meditation script text for a word budget and free-form context."""

    @abstractmethod
    def write_script(self, word_count: int, context: str, *, with_pause_markup: bool = False) -> str:
        """Return the script text."""

    def descriptor(self) -> str:
        return self.__class__.__name__


class StaticScriptWriter(ScriptWriter):
    """
    Returns a fixed script. Used for prepared scripts on the CLI and in tests.
    """

    def __init__(self, script: str) -> None:
        self._script = script
        self.requests: List[tuple[int, str]] = []

    def write_script(self, word_count: int, context: str, *, with_pause_markup: bool = False) -> str:
        self.requests.append((word_count, context))
        return self._script


class OpenAIScriptWriter(ScriptWriter):
    """
    Chat-completions implementation using the ``openai`` client.
    """

    def __init__(
        self,
        *,
        api_key: str,
        model: str = "gpt-4.1-nano",
        temperature: float = 0.8,
        client: Optional[object] = None,
    ) -> None:
        if client is None:
            try:
                from openai import OpenAI  # type: ignore
            except ImportError as exc:  # pragma: no cover - optional dependency
                raise RuntimeError(
                    "openai is required for OpenAIScriptWriter but is not installed."
                ) from exc
            client = OpenAI(api_key=api_key)
        self._client = client
        self._model = model
        self._temperature = temperature

    def write_script(self, word_count: int, context: str, *, with_pause_markup: bool = False) -> str:
        messages = [
            {"role": "system", "content": build_script_prompt(word_count, with_pause_markup=with_pause_markup)},
            {"role": "user", "content": context or "I would like a calming meditation."},
        ]
        logger.debug("Requesting %d-word script from %s", word_count, self._model)
        response = self._client.chat.completions.create(  # type: ignore[attr-defined]
            model=self._model,
            messages=messages,
            temperature=self._temperature,
        )
        choices = getattr(response, "choices", None) or []
        content = choices[0].message.content if choices else None
        if not content or not content.strip():
            raise RuntimeError("Script writer returned an empty script.")
        script = content.strip()
        logger.info("Received script with %d words (requested %d).", len(script.split()), word_count)
        return script
