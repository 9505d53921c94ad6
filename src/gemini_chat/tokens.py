"""Advisory token counting for the current history plus the draft input."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
import hashlib
import logging
from typing import TYPE_CHECKING

from .models import InlineBinary, Role, TextPart, Turn
from .prompt import TransportTurn, assemble, build_user_turn

if TYPE_CHECKING:
    from .backends import GenerativeBackend
    from .config import ChatSettings

LOGGER = logging.getLogger(__name__)

# Gemini bills a fixed 258 tokens per inline image.
IMAGE_TOKEN_COST = 258
ROLE_TOKEN_COST = 2


def approximate_turn_tokens(role: Role, parts: Iterable[object]) -> int:
    """Estimate token cost for one turn from its role and parts."""
    text = "".join(part.text for part in parts if isinstance(part, TextPart))
    images = sum(1 for part in parts if isinstance(part, InlineBinary))
    return ROLE_TOKEN_COST + len(text) // 4 + len(text.split()) + 2 + images * IMAGE_TOKEN_COST


def approximate_tokens(turns: Iterable[TransportTurn | Turn]) -> int:
    """Deterministic local approximation used when no backend counter exists."""
    return sum(approximate_turn_tokens(turn.role, tuple(turn.parts)) for turn in turns)


@dataclass(frozen=True)
class TokenEstimate:
    """A token count and the inputs it was computed from."""

    count: int
    computed_from: tuple[tuple[Turn, ...], str, str]


class TokenAccountant:
    """Recompute the token estimate whenever its inputs change.

    Inputs are the history, the draft, the model, the provider, the system
    instruction and the credential.

    The last estimate is cached against its input snapshot, so repeated calls
    with unchanged inputs return the same count without another backend call.
    """

    def __init__(
        self,
        backend_factory: Callable[[ChatSettings], GenerativeBackend] | None = None,
    ) -> None:
        if backend_factory is None:
            from .backends import create_backend

            backend_factory = create_backend
        self._backend_factory = backend_factory
        self._last: TokenEstimate | None = None
        self._last_key: tuple[object, ...] | None = None

    @property
    def last_estimate(self) -> TokenEstimate | None:
        return self._last

    async def estimate(
        self,
        history: Iterable[Turn],
        draft_input: str,
        settings: ChatSettings,
    ) -> TokenEstimate:
        """Return the token count of ``history`` plus ``draft_input``.

        Returns a zero count when there is no model or no required credential.
        Backend failures are logged and also yield zero.
        """
        snapshot = tuple(history)
        computed_from = (snapshot, draft_input, settings.model)
        if not settings.model.strip() or (
            settings.requires_credential and not settings.has_credential
        ):
            return TokenEstimate(count=0, computed_from=computed_from)

        key = _cache_key(computed_from, settings)
        if self._last is not None and self._last_key == key:
            return self._last

        draft_turn = build_user_turn(draft_input)
        payload = assemble(snapshot, draft_turn, settings.system_instruction)
        if not payload:
            return self._remember(TokenEstimate(count=0, computed_from=computed_from), key)

        try:
            backend = self._backend_factory(settings)
            count = await backend.count_tokens(settings.model, payload)
        except Exception as exc:  # noqa: BLE001 - advisory only, never fatal.
            LOGGER.warning(
                "tokens.count.failed",
                extra={
                    "event": "tokens.count.failed",
                    "model": settings.model,
                    "error_type": type(exc).__name__,
                },
            )
            return TokenEstimate(count=0, computed_from=computed_from)

        estimate = self._remember(
            TokenEstimate(count=max(0, int(count)), computed_from=computed_from), key
        )
        LOGGER.debug(
            "tokens.count.updated",
            extra={"event": "tokens.count.updated", "count": estimate.count},
        )
        return estimate

    def _remember(self, estimate: TokenEstimate, key: tuple[object, ...]) -> TokenEstimate:
        self._last = estimate
        self._last_key = key
        return estimate


def _cache_key(
    computed_from: tuple[tuple[Turn, ...], str, str], settings: ChatSettings
) -> tuple[object, ...]:
    # Only a digest of the credential is kept in memory.
    credential = hashlib.sha256(settings.api_key.encode("utf-8")).hexdigest()
    return (
        *computed_from,
        settings.provider,
        settings.system_instruction.strip(),
        credential,
    )
