"""
Character Detail Extractor
=========================

Backfills empty descriptive fields (age, gender, race, occupation, likes,
dislikes, first message) by probing the free-text description.

The vocabularies are data, not code: they live in a versioned YAML file
(data/detail_vocabulary.yaml) that can be swapped through configuration.
Each probe is independent, first match wins, and a field that already holds
a value is never touched.
"""

import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Pattern, Tuple

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

DEFAULT_VOCABULARY_PATH = Path(__file__).parent / "data" / "detail_vocabulary.yaml"

SUPPORTED_VOCABULARY_VERSIONS = (1,)


class VocabularyError(ValueError):
    """Vocabulary file could not be loaded or validated."""
    pass


class DetailVocabulary(BaseModel):
    """Validated contents of a detail vocabulary file."""
    version: int
    age_patterns: List[str] = Field(min_length=1)
    gender_terms: List[str] = Field(min_length=1)
    race_terms: List[str] = Field(min_length=1)
    occupation_terms: List[str] = Field(min_length=1)
    likes_triggers: List[str] = Field(min_length=1)
    dislikes_triggers: List[str] = Field(min_length=1)
    first_message_triggers: List[str] = Field(min_length=1)

    @field_validator('version')
    @classmethod
    def validate_version(cls, v: int) -> int:
        if v not in SUPPORTED_VOCABULARY_VERSIONS:
            raise ValueError(f'unsupported vocabulary version {v}')
        return v

    @field_validator('age_patterns')
    @classmethod
    def validate_age_patterns(cls, v: List[str]) -> List[str]:
        """Each age pattern must compile and capture the number in group 1."""
        for pattern in v:
            try:
                compiled = re.compile(pattern)
            except re.error as e:
                raise ValueError(f'invalid age pattern {pattern!r}: {e}')
            if compiled.groups < 1:
                raise ValueError(f'age pattern {pattern!r} has no capture group')
        return v

    @classmethod
    def load(cls, path: Path) -> "DetailVocabulary":
        """Load and validate a vocabulary YAML file."""
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise VocabularyError(f"Failed to load vocabulary {path}: {e}")

        try:
            return cls(**data)
        except (ValidationError, TypeError) as e:
            raise VocabularyError(f"Invalid vocabulary {path}: {e}")


def _term_pattern(terms: List[str]) -> Pattern[str]:
    """Whole-word alternation over terms, in list order."""
    alternation = "|".join(re.escape(term) for term in terms)
    return re.compile(rf"\b({alternation})\b", re.IGNORECASE)


def _trigger_pattern(triggers: List[str]) -> Pattern[str]:
    """`<trigger>:` capturing the rest of the sentence up to the next period."""
    # Longest first so "likes" is preferred over "like" at the same position
    ordered = sorted(triggers, key=len, reverse=True)
    alternation = "|".join(re.escape(trigger) for trigger in ordered)
    # A trigger may not be the tail of a longer word ("dislikes:" is not "likes:")
    # or of a negation ("not fond of:" is not "fond of:")
    return re.compile(rf"(?<![\w-])(?<!not )(?:{alternation}):\s*([^.]+)", re.IGNORECASE)


class DetailExtractor:
    """Backfill descriptive fields from a character description."""

    def __init__(self, vocabulary: DetailVocabulary):
        """
        Initialize extractor.

        Args:
            vocabulary: Validated vocabulary
        """
        self.vocabulary = vocabulary
        self.age_patterns = [re.compile(p, re.IGNORECASE) for p in vocabulary.age_patterns]

        # Probes run in this order; each fills one field
        self.probes: List[Tuple[str, Callable[[str], Optional[str]]]] = [
            ("age", self._probe_age),
            ("gender", self._term_probe(vocabulary.gender_terms)),
            ("race", self._term_probe(vocabulary.race_terms)),
            ("occupation", self._term_probe(vocabulary.occupation_terms)),
            ("likes", self._trigger_probe(vocabulary.likes_triggers)),
            ("dislikes", self._trigger_probe(vocabulary.dislikes_triggers)),
            ("first_message", self._trigger_probe(vocabulary.first_message_triggers)),
        ]

    @classmethod
    def from_file(cls, path: Path) -> "DetailExtractor":
        """Build an extractor from a vocabulary file."""
        vocabulary = DetailVocabulary.load(Path(path))
        logger.info(f"Loaded detail vocabulary v{vocabulary.version} from {path}")
        return cls(vocabulary)

    @classmethod
    def default(cls) -> "DetailExtractor":
        """Extractor for the bundled vocabulary (loaded once)."""
        return _default_extractor()

    def _probe_age(self, description: str) -> Optional[str]:
        for pattern in self.age_patterns:
            match = pattern.search(description)
            if match:
                return match.group(1)
        return None

    @staticmethod
    def _term_probe(terms: List[str]) -> Callable[[str], Optional[str]]:
        pattern = _term_pattern(terms)

        def probe(description: str) -> Optional[str]:
            match = pattern.search(description)
            return match.group(1) if match else None

        return probe

    @staticmethod
    def _trigger_probe(triggers: List[str]) -> Callable[[str], Optional[str]]:
        pattern = _trigger_pattern(triggers)

        def probe(description: str) -> Optional[str]:
            match = pattern.search(description)
            if not match:
                return None
            return match.group(1).strip() or None

        return probe

    def extract(self, partial: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Fill empty descriptive fields from the description.

        Args:
            partial: Partial record keyed by CharacterRecord field names

        Returns:
            New record mapping; fields that already held a value are unchanged
        """
        record = dict(partial)
        description = record.get("description") or ""
        if not isinstance(description, str) or not description:
            return record

        for field, probe in self.probes:
            if record.get(field):
                continue
            value = probe(description)
            if value:
                record[field] = value
                logger.debug(f"Inferred {field}={value!r} from description")
        return record


@lru_cache(maxsize=1)
def _default_extractor() -> DetailExtractor:
    return DetailExtractor.from_file(DEFAULT_VOCABULARY_PATH)


def extract_character_details(
    partial: Mapping[str, Any],
    extractor: Optional[DetailExtractor] = None
) -> Dict[str, Any]:
    """
    Convenience function to backfill details with the bundled vocabulary.

    Args:
        partial: Partial record keyed by CharacterRecord field names
        extractor: Optional extractor (defaults to the bundled vocabulary)

    Returns:
        New record mapping with empty descriptive fields filled where possible
    """
    return (extractor or DetailExtractor.default()).extract(partial)
