"""
Character Card Data Models
=========================

Binary-level records (PNG chunks, decoded text chunks), the canonical
character record and the import result DTO.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Dict, List, Any
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ===========================
# PNG Container Records
# ===========================

class ChunkOrigin(str, Enum):
    """PNG ancillary text chunk types that can carry card data."""
    TEXT = "tEXt"
    ZTXT = "zTXt"
    ITXT = "iTXt"


@dataclass(frozen=True)
class Chunk:
    """One PNG chunk: 4-character type tag, payload bytes and stored CRC."""
    tag: str
    data: bytes
    crc: int = 0


@dataclass(frozen=True)
class TextChunkRecord:
    """Keyword/text pair decoded from a tEXt, zTXt or iTXt chunk."""
    keyword: str
    text: str
    origin: ChunkOrigin


# ===========================
# Import Pipeline Enums
# ===========================

class FileKind(str, Enum):
    """Kinds of file the importer accepts."""
    JSON = "json"
    V2_CARD = "v2"
    PNG = "png"


class ImportState(str, Enum):
    """Lifecycle of one import attempt."""
    IDLE = "idle"
    READING = "reading"
    PARSING = "parsing"
    VALIDATING = "validating"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ImportState.SUCCESS, ImportState.FAILED)


# ===========================
# Canonical Character Record
# ===========================

class CharacterRecord(BaseModel):
    """
    Canonical persona definition produced by an import.

    Attributes are snake_case; the camelCase aliases (systemPrompt,
    firstMessage, ...) are the names used by the rest of the application.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    # Identity
    name: str = Field(min_length=1)
    avatar: str = ""
    full_image: str = ""

    # Persona text
    description: str = ""
    personality: str = ""
    system_prompt: str = ""
    custom_instructions: str = ""
    backstory: str = ""
    first_message: str = ""
    message_example: str = ""
    scenario: str = ""
    creator_notes: str = ""
    alternate_greetings: List[str] = Field(default_factory=list)

    # Metadata
    tags: List[str] = Field(default_factory=list)
    creator: str = ""
    character_version: str = ""
    extensions: Optional[Dict[str, Any]] = None

    # Descriptive details (backfilled from the description when empty)
    age: str = ""
    gender: str = ""
    race: str = ""
    occupation: str = ""
    likes: str = ""
    dislikes: str = ""

    # Roster state
    status: str = ""
    bookmarked: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Dump using the application's camelCase field names."""
        return self.model_dump(by_alias=True)


# ===========================
# Import DTOs
# ===========================

class CardImportResult(BaseModel):
    """Result of character card import operation."""
    record: CharacterRecord
    source_kind: FileKind
    format: str  # Detected schema, e.g. "Wrapped (chara_card_v2)"
    spec: Optional[str] = None
    spec_version: Optional[str] = None
    chunk_keyword: Optional[str] = None  # PNG imports only
    chunk_origin: Optional[ChunkOrigin] = None
    warnings: List[str] = Field(default_factory=list)
