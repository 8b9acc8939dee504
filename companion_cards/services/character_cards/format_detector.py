"""
Card Format Detector
===================

Detects which source schema a parsed card payload follows.
"""

import logging
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)


class CardFormat(Enum):
    """Supported character card source schemas."""
    WRAPPED = "wrapped"  # {spec, spec_version, data: {...}}
    FLAT = "flat"  # fields at the top level
    UNKNOWN = "unknown"


class FormatDetector:
    """Detect the source schema of a parsed card payload."""

    # Spec names written by known character-chat tools
    KNOWN_SPECS = ("chara_card_v2", "chara_card_v3")

    @staticmethod
    def detect(value: Any) -> CardFormat:
        """
        Detect card schema.

        Args:
            value: Parsed payload

        Returns:
            CardFormat.WRAPPED when both `spec` and a `data` mapping are present,
            CardFormat.FLAT for a mapping without `spec`, else CardFormat.UNKNOWN
        """
        if not isinstance(value, dict):
            logger.warning(f"Card payload is a {type(value).__name__}, not an object")
            return CardFormat.UNKNOWN

        if "spec" in value and "data" in value:
            if isinstance(value["data"], dict):
                return CardFormat.WRAPPED
            logger.warning("Card has 'spec' and 'data' but 'data' is not an object")
            return CardFormat.UNKNOWN

        if "spec" in value:
            logger.warning(f"Card declares spec {value['spec']!r} without a 'data' section")
            return CardFormat.UNKNOWN

        return CardFormat.FLAT

    @classmethod
    def get_format_name(cls, format: CardFormat, spec: Optional[str] = None) -> str:
        """Get human-readable format name."""
        if format == CardFormat.WRAPPED:
            return f"Wrapped ({spec})" if spec else "Wrapped"
        names = {
            CardFormat.FLAT: "Flat",
            CardFormat.UNKNOWN: "Unknown Format",
        }
        return names.get(format, "Unknown")
