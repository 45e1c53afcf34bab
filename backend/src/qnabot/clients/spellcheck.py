"""Spell correction applied to user messages before the dialog sees them."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from qnabot.clients.base import UpstreamResponseError, request_json
from qnabot.constants.gateway import SPELLCHECK_KEY_HEADER, SPELLCHECK_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpellcheckResult:
    """Original and corrected text of one message."""

    original: str
    corrected: str

    @property
    def changed(self) -> bool:
        return self.original != self.corrected


def apply_corrections(text: str, flagged_tokens: list[dict[str, Any]]) -> str:
    """Replace flagged tokens with their top suggestion.

    Args:
        text: Original text.
        flagged_tokens: Tokens as reported by the spell-check service, each
            with an offset, the token text and ranked suggestions.

    Returns:
        Corrected text. Tokens whose offset does not match the text are skipped.
    """
    corrected = text
    # Apply from the end so earlier offsets stay valid
    for token in sorted(flagged_tokens, key=lambda t: t.get("offset", 0), reverse=True):
        suggestions = token.get("suggestions") or []
        original = token.get("token", "")
        offset = token.get("offset")
        if not suggestions or not original or not isinstance(offset, int) or offset < 0:
            continue
        if corrected[offset : offset + len(original)] != original:
            continue
        replacement = suggestions[0].get("suggestion", original)
        corrected = corrected[:offset] + replacement + corrected[offset + len(original) :]
    return corrected


class SpellcheckClient:
    """Client for the spell-check service.

    With no endpoint or key configured, correct() returns the text unchanged.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None,
        endpoint: str | None,
        api_key: str | None,
        mode: str = "spell",
        market: str = "en-US",
    ) -> None:
        """Initialize spell-check client.

        Args:
            client: Shared async HTTP client (may be None when disabled).
            endpoint: Spell-check endpoint URL.
            api_key: Subscription key.
            mode: Check mode ("spell" or "proof").
            market: Market code, e.g. "en-US".
        """
        self._client = client
        self._endpoint = endpoint
        self._api_key = api_key
        self._mode = mode
        self._market = market

    @property
    def enabled(self) -> bool:
        return bool(self._client is not None and self._endpoint and self._api_key)

    async def correct(self, text: str) -> SpellcheckResult:
        """Spell-correct one message.

        Raises:
            UpstreamUnavailable: If the service call fails.
        """
        if not self.enabled or not text.strip():
            return SpellcheckResult(original=text, corrected=text)

        assert self._client is not None and self._endpoint is not None
        body = await request_json(
            self._client,
            "POST",
            self._endpoint,
            service="spellcheck",
            params={"mode": self._mode, "mkt": self._market},
            headers={SPELLCHECK_KEY_HEADER: self._api_key},
            data={"text": text},
            timeout=SPELLCHECK_TIMEOUT_SECONDS,
        )

        flagged = body.get("flaggedTokens") if isinstance(body, dict) else None
        if not isinstance(flagged, list):
            raise UpstreamResponseError("spellcheck response has no 'flaggedTokens' list")
        _check_flagged_tokens(flagged)

        corrected = apply_corrections(text, flagged)
        if corrected != text:
            logger.info(f"Spellcheck corrected {text!r} to {corrected!r}")
        return SpellcheckResult(original=text, corrected=corrected)


def _check_flagged_tokens(flagged: list[Any]) -> None:
    """Reject flagged tokens that apply_corrections cannot read.

    Raises:
        UpstreamResponseError: If a token or one of its suggestions is malformed.
    """
    for token in flagged:
        if not isinstance(token, dict):
            raise UpstreamResponseError(f"spellcheck token is not an object: {token!r}")
        if not isinstance(token.get("offset"), int) or not isinstance(token.get("token"), str):
            raise UpstreamResponseError(f"spellcheck token has no offset or text: {token!r}")
        suggestions = token.get("suggestions") or []
        if not isinstance(suggestions, list):
            raise UpstreamResponseError(f"spellcheck token has invalid suggestions: {token!r}")
        for suggestion in suggestions:
            if not isinstance(suggestion, dict) or not isinstance(
                suggestion.get("suggestion", ""), str
            ):
                raise UpstreamResponseError(
                    f"spellcheck suggestion is not an object: {suggestion!r}"
                )
