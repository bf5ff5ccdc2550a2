"""
rivalry.services.narrator — Commentary Generation via Anthropic
================================================================

A thin ``httpx`` wrapper around the Anthropic Messages API with one
``.generate(trigger, context)`` call.  Every failure — transport error,
non-200, missing text — surfaces as :class:`NarratorError`; the engine
catches it and simply produces no commentary.
"""

from __future__ import annotations

import logging
import os

import httpx

from rivalry.config import RivalryConfig
from rivalry.engine.state import CommentaryTrigger
from rivalry.errors import NarratorError

logger = logging.getLogger(__name__)

ANTHROPIC_API = "https://api.anthropic.com"
ANTHROPIC_VERSION = "2023-06-01"

_SYSTEM_INSTRUCTION = """\
You are the commentator for a developer leaderboard on the {project} project.
Players: {players}.

Write short, competitive commentary in the voice of a sports announcer who
knows their way around a git log.

Rules:
1. Keep it under 2 sentences.
2. Tease untested code and broken builds; celebrate tests and merged work.
3. Use developer humour (git jokes, testing puns).
4. Be playful, never malicious — this is friendly competition.
5. Refer to the specific actions in the context when given.
"""


def build_system_instruction(cfg: RivalryConfig) -> str:
    players = ", ".join(f"{name} ({login})" for login, name in cfg.roster.items())
    return _SYSTEM_INSTRUCTION.format(
        project=cfg.project_name, players=players or "whoever shows up"
    )


class AnthropicNarrator:
    """Generates one piece of commentary per call."""

    def __init__(
        self,
        api_key: str,
        *,
        system_instruction: str,
        model: str = "claude-3-5-haiku-20241022",
        max_tokens: int = 150,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("Anthropic API key not configured")
        self.api_key = api_key
        self.system_instruction = system_instruction
        self.model = model
        self.max_tokens = max_tokens
        self._client = client or httpx.AsyncClient(
            base_url=ANTHROPIC_API,
            timeout=20,
            transport=httpx.AsyncHTTPTransport(retries=1),
        )

    async def generate(self, trigger: CommentaryTrigger, context: str) -> str:
        """Return commentary text for *trigger* given *context*.

        Raises
        ------
        NarratorError
            On any transport error, non-200 status or malformed body.
        """
        body = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": self.system_instruction,
            "messages": [
                {
                    "role": "user",
                    "content": f"Generate commentary for: {trigger.value}\n\nContext: {context}",
                }
            ],
        }
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

        try:
            resp = await self._client.post("/v1/messages", json=body, headers=headers)
        except httpx.HTTPError as exc:
            raise NarratorError(f"Narrator request failed: {exc}") from exc

        if resp.status_code != 200:
            raise NarratorError(f"Narrator returned HTTP {resp.status_code}")

        try:
            text = resp.json()["content"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise NarratorError("Narrator returned a malformed response") from exc

        if not isinstance(text, str) or not text.strip():
            raise NarratorError("Narrator returned empty text")
        return text.strip()

    async def aclose(self) -> None:
        await self._client.aclose()


def get_narrator(cfg: RivalryConfig) -> AnthropicNarrator | None:
    """Narrator if commentary is enabled and ``ANTHROPIC_API_KEY`` is set."""
    if not cfg.commentary.enabled:
        logger.info("Commentary disabled in config")
        return None

    api_key = os.getenv("ANTHROPIC_API_KEY", "")
    if not api_key:
        logger.warning("ANTHROPIC_API_KEY not configured — commentary disabled")
        return None

    return AnthropicNarrator(
        api_key,
        system_instruction=build_system_instruction(cfg),
        model=cfg.commentary.model,
        max_tokens=cfg.commentary.max_tokens,
    )
