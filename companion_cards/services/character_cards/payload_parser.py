"""
Card Payload Parser
==================

Turns candidate text into a JSON object. Decoding strategies and candidates
form one ordered chain; the first link that produces an object wins.
"""

import base64
import binascii
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .exceptions import NoValidPayloadError
from .models import TextChunkRecord

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class ParsedPayload:
    """A decoded card payload and where it came from."""
    value: Dict[str, Any]
    strategy: str
    candidate: Optional[TextChunkRecord] = None


def decode_direct(text: str) -> Optional[Dict[str, Any]]:
    """Parse the text itself as a JSON object."""
    try:
        value = json.loads(text)
    except (ValueError, TypeError, RecursionError):
        # RecursionError: nesting deeper than the decoder can follow
        return None
    return value if isinstance(value, dict) else None


def decode_base64(text: str) -> Optional[Dict[str, Any]]:
    """Strip whitespace, base64-decode, then parse the UTF-8 result as a JSON object."""
    compact = _WHITESPACE.sub("", text)
    if not compact:
        return None
    try:
        decoded = base64.b64decode(compact, validate=True).decode("utf-8")
    except (binascii.Error, ValueError):
        return None
    return decode_direct(decoded)


class PayloadParser:
    """Decode the first candidate that holds a JSON object."""

    # Tried in order for each candidate
    STRATEGIES: Sequence[Tuple[str, Callable[[str], Optional[Dict[str, Any]]]]] = (
        ("direct", decode_direct),
        ("base64", decode_base64),
    )

    def __init__(self, preview_chars: int = 100):
        """
        Initialize parser.

        Args:
            preview_chars: Characters of each rejected candidate's text to log
        """
        self.preview_chars = preview_chars

    @classmethod
    def parse_text(cls, text: str) -> Optional[Tuple[str, Dict[str, Any]]]:
        """
        Run the decoding strategies over one text.

        Returns:
            (strategy_name, parsed_object) for the first strategy that succeeds, else None
        """
        for name, strategy in cls.STRATEGIES:
            value = strategy(text)
            if value is not None:
                return name, value
        return None

    def parse(self, candidates: Iterable[TextChunkRecord]) -> ParsedPayload:
        """
        Parse candidates in order, returning the first that decodes.

        Args:
            candidates: Ordered candidates from CandidateSelector

        Returns:
            ParsedPayload for the first decodable candidate

        Raises:
            NoValidPayloadError: No candidate decoded (or there were none)
        """
        rejected: List[TextChunkRecord] = []

        for candidate in candidates:
            outcome = self.parse_text(candidate.text)
            if outcome is not None:
                strategy, value = outcome
                logger.info(
                    f"Decoded card payload from {candidate.origin.value} chunk "
                    f"'{candidate.keyword}' ({strategy})"
                )
                return ParsedPayload(value=value, strategy=strategy, candidate=candidate)
            rejected.append(candidate)

        if not rejected:
            logger.warning("No character data candidates found in PNG")
        for candidate in rejected:
            logger.warning(
                f"Rejected {candidate.origin.value} chunk '{candidate.keyword}': "
                f"{candidate.text[:self.preview_chars]!r}"
            )
        raise NoValidPayloadError(
            f"None of {len(rejected)} candidate chunks held valid character data"
        )
