"""
Character Card System
====================

Import persona definitions from JSON files and PNG character cards.

Supports:
- PNG cards with the payload in tEXt, zTXt or iTXt chunks (plain or base64 JSON)
- Wrapped ({spec, data}) and flat card schemas
- Backfilling descriptive details from the free-text description
"""

from .candidate_selector import CandidateSelector
from .card_importer import CharacterCardImporter, detect_file_kind, encode_avatar
from .detail_extractor import DetailExtractor, DetailVocabulary, extract_character_details
from .exceptions import (
    CardImportError,
    ImportSessionError,
    MalformedContainerError,
    MissingRequiredFieldError,
    NoValidPayloadError,
    UnsupportedFileError,
    UnsupportedSchemaError,
)
from .format_detector import CardFormat, FormatDetector
from .metadata_handler import PNGMetadataHandler
from .models import (
    CardImportResult,
    CharacterRecord,
    Chunk,
    ChunkOrigin,
    FileKind,
    ImportState,
    TextChunkRecord,
)
from .payload_parser import ParsedPayload, PayloadParser
from .png_container import PNGContainerReader
from .schema_normalizer import SchemaNormalizer

__all__ = [
    'CandidateSelector',
    'CharacterCardImporter',
    'detect_file_kind',
    'encode_avatar',
    'DetailExtractor',
    'DetailVocabulary',
    'extract_character_details',
    'CardImportError',
    'ImportSessionError',
    'MalformedContainerError',
    'MissingRequiredFieldError',
    'NoValidPayloadError',
    'UnsupportedFileError',
    'UnsupportedSchemaError',
    'CardFormat',
    'FormatDetector',
    'PNGMetadataHandler',
    'CardImportResult',
    'CharacterRecord',
    'Chunk',
    'ChunkOrigin',
    'FileKind',
    'ImportState',
    'TextChunkRecord',
    'ParsedPayload',
    'PayloadParser',
    'PNGContainerReader',
    'SchemaNormalizer',
]
