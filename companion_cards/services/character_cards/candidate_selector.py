"""
Card Candidate Selector
======================

Orders decoded PNG text records and picks the ones that may hold an embedded
character payload.
"""

import logging
from typing import Iterable, List

from .models import ChunkOrigin, TextChunkRecord

logger = logging.getLogger(__name__)


class CandidateSelector:
    """Select text records that look like embedded character data."""

    # tEXt first, then zTXt, then iTXt
    ORIGIN_PRIORITY = (ChunkOrigin.TEXT, ChunkOrigin.ZTXT, ChunkOrigin.ITXT)

    # Keyword fragments used by character-chat tools ('chara', 'ccv3_character', ...)
    KEYWORD_MARKERS = ("chara", "character")

    @classmethod
    def order(cls, records: Iterable[TextChunkRecord]) -> List[TextChunkRecord]:
        """Group records by origin priority, keeping file order within a group."""
        records = list(records)
        ordered = []
        for origin in cls.ORIGIN_PRIORITY:
            ordered.extend(r for r in records if r.origin == origin)
        return ordered

    @classmethod
    def is_candidate(cls, record: TextChunkRecord) -> bool:
        """Keyword mentions a character, or the text looks like a JSON object."""
        keyword = record.keyword.lower()
        if any(marker in keyword for marker in cls.KEYWORD_MARKERS):
            return True
        return record.text.strip().startswith("{")

    @classmethod
    def select(cls, records: Iterable[TextChunkRecord]) -> List[TextChunkRecord]:
        """
        Build the ordered candidate list.

        Every match is returned, so a caller can move past a candidate that
        turns out not to decode.

        Args:
            records: Decoded text records in file order

        Returns:
            Matching records in priority order
        """
        candidates = [r for r in cls.order(records) if cls.is_candidate(r)]
        logger.debug(
            f"Selected {len(candidates)} card candidates: "
            f"{[(c.origin.value, c.keyword) for c in candidates]}"
        )
        return candidates
