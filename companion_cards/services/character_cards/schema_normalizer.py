"""
Schema Normalizer
================

Maps wrapped ({spec, data}) and flat card payloads onto the canonical
CharacterRecord.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from .detail_extractor import DetailExtractor
from .exceptions import MissingRequiredFieldError, UnsupportedSchemaError
from .format_detector import CardFormat, FormatDetector
from .models import CharacterRecord

logger = logging.getLogger(__name__)


# Canonical field -> source keys, first non-empty value wins.
# The camelCase key comes first so already-canonical flat cards map onto themselves.
TEXT_FIELDS: Dict[str, Tuple[str, ...]] = {
    "name": ("name",),
    "avatar": ("avatar",),
    "full_image": ("fullImage", "full_image", "background_image"),
    "description": ("description",),
    "personality": ("personality",),
    "system_prompt": ("systemPrompt", "system_prompt"),
    "custom_instructions": ("customInstructions", "creator_notes"),
    "creator_notes": ("creatorNotes", "creator_notes"),
    "backstory": ("backstory",),
    "first_message": ("firstMessage", "first_mes"),
    "message_example": ("messageExample", "mes_example"),
    "scenario": ("scenario",),
    "creator": ("creator",),
    "character_version": ("characterVersion", "character_version"),
    "age": ("age",),
    "gender": ("gender",),
    "race": ("race",),
    "occupation": ("occupation", "job"),
    "likes": ("likes",),
    "dislikes": ("dislikes",),
    "status": ("status",),
}

LIST_FIELDS: Dict[str, Tuple[str, ...]] = {
    "alternate_greetings": ("alternateGreetings", "alternate_greetings"),
    "tags": ("tags",),
}

BOOL_FIELDS: Dict[str, Tuple[str, ...]] = {
    "bookmarked": ("bookmarked",),
}

REQUIRED_FIELDS = ("name",)

_MAPPED_KEYS = frozenset(
    key
    for table in (TEXT_FIELDS, LIST_FIELDS, BOOL_FIELDS)
    for keys in table.values()
    for key in keys
) | {"extensions"}


def _as_text(value: Any) -> str:
    """Coerce a scalar card value to text."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return json.dumps(value)
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, ensure_ascii=False)


def _as_list(value: Any) -> List[str]:
    """Coerce a card value to a list of strings (comma-separated text is split)."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [_as_text(item) for item in value if item is not None]
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [_as_text(value)]


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def _first_present(source: Dict[str, Any], keys: Tuple[str, ...]) -> Any:
    """Return the first value under `keys` that is neither missing nor empty."""
    for key in keys:
        value = source.get(key)
        if value is not None and value != "" and value != []:
            return value
    return None


class SchemaNormalizer:
    """Convert wrapped and flat card payloads into CharacterRecord."""

    def __init__(self, detail_extractor: Optional[DetailExtractor] = None):
        """
        Initialize normalizer.

        Args:
            detail_extractor: Extractor used to backfill descriptive fields
                (defaults to the bundled vocabulary)
        """
        self.detail_extractor = detail_extractor or DetailExtractor.default()

    @staticmethod
    def unwrap(value: Any) -> Tuple[CardFormat, Dict[str, Any]]:
        """
        Detect the schema and return the mapping holding the character fields.

        Raises:
            UnsupportedSchemaError: Payload matches neither known schema
        """
        card_format = FormatDetector.detect(value)
        if card_format == CardFormat.WRAPPED:
            return card_format, value["data"]
        if card_format == CardFormat.FLAT:
            return card_format, value
        raise UnsupportedSchemaError("Card data matches neither the wrapped nor the flat schema")

    @classmethod
    def normalize(cls, value: Any) -> Dict[str, Any]:
        """
        Map a parsed payload onto canonical fields.

        Args:
            value: Parsed card payload

        Returns:
            Partial record keyed by CharacterRecord field names, every field present

        Raises:
            UnsupportedSchemaError: Payload matches neither known schema
        """
        card_format, source = cls.unwrap(value)

        record: Dict[str, Any] = {}
        for field, keys in TEXT_FIELDS.items():
            record[field] = _as_text(_first_present(source, keys))
        for field, keys in LIST_FIELDS.items():
            record[field] = _as_list(_first_present(source, keys))
        for field, keys in BOOL_FIELDS.items():
            record[field] = _as_bool(_first_present(source, keys))

        if not record["description"]:
            record["description"] = record["personality"]

        record["extensions"] = cls._collect_extensions(source)

        logger.debug(
            f"Normalized {FormatDetector.get_format_name(card_format)} card "
            f"'{record['name']}'"
        )
        return record

    @staticmethod
    def _collect_extensions(source: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Source extensions plus every unmapped source key, verbatim."""
        raw = source.get("extensions")
        unmapped = {k: v for k, v in source.items() if k not in _MAPPED_KEYS}

        if isinstance(raw, dict):
            extensions = dict(raw)
        else:
            extensions = {}
            if raw is not None:
                unmapped["extensions"] = raw

        for key, value in unmapped.items():
            extensions.setdefault(key, value)

        if not extensions and raw is None:
            return None
        return extensions

    @staticmethod
    def collect_warnings(value: Any) -> List[str]:
        """Notes about card content that was kept but is not used directly."""
        warnings = []
        card_format = FormatDetector.detect(value)
        if card_format == CardFormat.WRAPPED:
            spec = value.get("spec")
            if spec not in FormatDetector.KNOWN_SPECS:
                warnings.append(f"Unrecognized card spec {spec!r}, imported as a wrapped card")
            source = value["data"]
        else:
            source = value if isinstance(value, dict) else {}

        if source.get("character_book"):
            warnings.append("Character has a lorebook/character book - it is kept in extensions only")
        return warnings

    @staticmethod
    def validate_required(record: Dict[str, Any]) -> None:
        """
        Enforce the required-field contract.

        Raises:
            MissingRequiredFieldError: A required field is empty
        """
        for field in REQUIRED_FIELDS:
            if not str(record.get(field) or "").strip():
                raise MissingRequiredFieldError(field)

    def build_record(self, value: Any, avatar: Optional[str] = None) -> CharacterRecord:
        """
        Normalize, backfill details and validate a parsed payload.

        Args:
            value: Parsed card payload
            avatar: Replacement avatar (PNG imports use the card image itself)

        Returns:
            Validated CharacterRecord

        Raises:
            UnsupportedSchemaError: Payload matches neither known schema
            MissingRequiredFieldError: Name is empty after normalization
        """
        record = self.normalize(value)
        record = self.detail_extractor.extract(record)

        if avatar is not None:
            record["avatar"] = avatar

        self.validate_required(record)
        record["name"] = record["name"].strip()

        character = CharacterRecord(**record)
        logger.info(f"Normalized character card '{character.name}'")
        return character
