"""
Character Card Importer
======================

Import character cards from JSON files and PNG cards.

Each file-selection session moves through
IDLE -> READING -> PARSING -> VALIDATING -> SUCCESS | FAILED.
Session state lives in a session_id -> ImportState map owned by the
importer. A finished session (SUCCESS or FAILED) refuses further attempts
until the caller resets it.
"""

import asyncio
import base64
import inspect
import json
import logging
import uuid
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from companion_cards.config import CardImportConfig

from .candidate_selector import CandidateSelector
from .detail_extractor import DetailExtractor
from .exceptions import (
    CardImportError,
    ImportSessionError,
    NoValidPayloadError,
    UnsupportedFileError,
)
from .format_detector import FormatDetector
from .metadata_handler import PNGMetadataHandler
from .models import CardImportResult, CharacterRecord, ChunkOrigin, FileKind, ImportState
from .payload_parser import PayloadParser
from .png_container import PNGContainerReader, chunk_crc_matches, is_png_data
from .schema_normalizer import SchemaNormalizer

logger = logging.getLogger(__name__)

CardSource = Union[str, Path, bytes]
AcceptCallback = Callable[[CharacterRecord], Union[None, Awaitable[None]]]
NotifyCallback = Callable[[str, str], None]

EXTENSION_KINDS = {
    ".png": FileKind.PNG,
    ".json": FileKind.JSON,
    ".v2": FileKind.V2_CARD,
    ".card": FileKind.V2_CARD,
}


def encode_avatar(png_data: bytes, mime_type: str = "image/png") -> str:
    """Encode image bytes as a data URL that can be stored with the character."""
    encoded = base64.b64encode(png_data).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def detect_file_kind(
    data: Optional[bytes] = None,
    filename: Optional[str] = None,
    declared: Optional[FileKind] = None
) -> FileKind:
    """
    Work out which import path a file takes.

    A declared kind wins, then the PNG signature, then the file extension,
    then a leading '{' in the content.

    Raises:
        UnsupportedFileError: Kind cannot be determined
    """
    if declared is not None:
        return FileKind(declared)

    if data is not None and is_png_data(data):
        return FileKind.PNG

    if filename:
        kind = EXTENSION_KINDS.get(Path(filename).suffix.lower())
        if kind is not None:
            return kind

    if data is not None and data.lstrip(b"\xef\xbb\xbf \t\r\n").startswith(b"{"):
        return FileKind.JSON

    raise UnsupportedFileError(f"Cannot determine card file kind for {filename or 'in-memory data'}")


class CharacterCardImporter:
    """Import character cards from JSON and PNG files."""

    def __init__(
        self,
        config: Optional[CardImportConfig] = None,
        accept_callback: Optional[AcceptCallback] = None,
        notify: Optional[NotifyCallback] = None
    ):
        """
        Initialize importer.

        Args:
            config: Import configuration (defaults apply when omitted)
            accept_callback: Receives each validated CharacterRecord (sync or async)
            notify: Receives (level, message) for user-facing notifications
        """
        self.config = config or CardImportConfig()
        self.accept_callback = accept_callback
        self.notify = notify

        if self.config.vocabulary_path is not None:
            extractor = DetailExtractor.from_file(self.config.vocabulary_path)
        else:
            extractor = DetailExtractor.default()

        self.normalizer = SchemaNormalizer(detail_extractor=extractor)
        self.payload_parser = PayloadParser(preview_chars=self.config.candidate_preview_chars)
        self._sessions: Dict[str, ImportState] = {}

    # ------------------------------------------------------------------
    # Session tracking
    # ------------------------------------------------------------------

    def open_session(self) -> str:
        """Start a new file-selection session in the IDLE state."""
        session_id = uuid.uuid4().hex
        self._sessions[session_id] = ImportState.IDLE
        logger.debug(f"Opened import session {session_id}")
        return session_id

    def state(self, session_id: str) -> ImportState:
        """Current state of a session."""
        try:
            return self._sessions[session_id]
        except KeyError:
            raise ImportSessionError(f"Unknown import session: {session_id}")

    def reset(self, session_id: str) -> None:
        """Return a session to IDLE so it can accept a new file."""
        current = self.state(session_id)
        if not current.is_terminal and current != ImportState.IDLE:
            raise ImportSessionError(
                f"Import session {session_id} is still {current.value}",
                user_message="An import is already in progress."
            )
        self._sessions[session_id] = ImportState.IDLE
        logger.debug(f"Reset import session {session_id}")

    def close_session(self, session_id: str) -> None:
        """Forget a session."""
        self._sessions.pop(session_id, None)

    def _set_state(self, session_id: str, state: ImportState) -> None:
        logger.debug(f"Import session {session_id}: {self._sessions.get(session_id)} -> {state.value}")
        self._sessions[session_id] = state

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    async def import_file(
        self,
        session_id: str,
        source: CardSource,
        kind: Optional[FileKind] = None,
        filename: Optional[str] = None
    ) -> CardImportResult:
        """
        Import one character card file.

        Args:
            session_id: Session from open_session()
            source: Path to the file, or its raw bytes
            kind: Declared file kind (detected from content/filename when omitted)
            filename: Original filename, used for kind detection of in-memory data

        Returns:
            CardImportResult with the validated record, format and warnings

        Raises:
            ImportSessionError: Session is not IDLE
            CardImportError: Any import failure, including an accept_callback
                that raises (the session becomes FAILED)
        """
        current = self.state(session_id)
        if current != ImportState.IDLE:
            raise ImportSessionError(
                f"Import session {session_id} is {current.value}; reset it before importing again"
            )

        self._set_state(session_id, ImportState.READING)
        try:
            if isinstance(source, bytes):
                data = source
                self._check_size(len(data))
                source_kind = detect_file_kind(data, filename, kind)
            else:
                path = Path(source)
                filename = filename or path.name
                # Only a declared text kind skips sniffing; a PNG named card.json is still a PNG
                if kind is not None and FileKind(kind) != FileKind.PNG:
                    data = await self._read_path(path, as_text=True)
                    source_kind = FileKind(kind)
                else:
                    data = await self._read_path(path, as_text=False)
                    source_kind = detect_file_kind(data, filename, kind)

            logger.info(f"Importing {source_kind.value} character card ({filename or 'in-memory'}, {len(data)} bytes)")

            self._set_state(session_id, ImportState.PARSING)
            if source_kind == FileKind.PNG:
                result = self._import_png(data, session_id)
            else:
                result = self._import_json(data, source_kind, session_id)

            if self.accept_callback is not None:
                outcome = self.accept_callback(result.record)
                if inspect.isawaitable(outcome):
                    await outcome

        except CardImportError as e:
            self._fail(session_id, e)
            raise
        except Exception as e:
            error = CardImportError(f"Unexpected error importing character card: {e!r}")
            self._fail(session_id, error)
            raise error from e

        self._set_state(session_id, ImportState.SUCCESS)
        logger.info(f"Successfully imported character card: {result.record.name}")
        self._notify("success", f"Imported {result.record.name}")
        return result

    def _fail(self, session_id: str, error: CardImportError) -> None:
        self._set_state(session_id, ImportState.FAILED)
        logger.error(f"Character card import failed: {error}")
        self._notify("error", error.user_message)

    async def _read_path(self, path: Path, as_text: bool) -> Union[bytes, str]:
        """Read the whole file off the event loop, as text for JSON cards and bytes otherwise."""
        try:
            size = await asyncio.to_thread(lambda: path.stat().st_size)
            self._check_size(size)
            if as_text:
                return await asyncio.to_thread(path.read_text, encoding="utf-8-sig")
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise UnsupportedFileError(
                f"Cannot read card file {path}: {e}",
                user_message="The selected file could not be read."
            )
        except UnicodeDecodeError as e:
            raise NoValidPayloadError(f"Card file {path} is not UTF-8 text: {e}")

    def _check_size(self, size: int) -> None:
        if size > self.config.max_file_size_bytes:
            raise UnsupportedFileError(
                f"Card file is {size} bytes (limit {self.config.max_file_size_bytes})",
                user_message="The selected file is too large."
            )

    def _import_png(self, png_data: bytes, session_id: str) -> CardImportResult:
        """Container -> text chunks -> candidates -> payload -> record."""
        warnings: List[str] = []

        chunks = PNGContainerReader.read_chunks(png_data)
        if self.config.warn_on_crc_mismatch:
            for chunk in chunks:
                if not chunk_crc_matches(chunk):
                    logger.warning(f"CRC mismatch in {chunk.tag} chunk (reading it anyway)")
                    warnings.append(f"PNG {chunk.tag} chunk has a bad checksum")

        records = PNGMetadataHandler.decode_text_chunks(chunks, self.config.max_text_chunk_bytes)
        candidates = CandidateSelector.select(records)
        payload = self.payload_parser.parse(candidates)

        self._set_state(session_id, ImportState.VALIDATING)
        record = self.normalizer.build_record(payload.value, avatar=encode_avatar(png_data))
        warnings.extend(self.normalizer.collect_warnings(payload.value))

        return self._build_result(
            record,
            payload.value,
            FileKind.PNG,
            warnings,
            chunk_keyword=payload.candidate.keyword if payload.candidate else None,
            chunk_origin=payload.candidate.origin if payload.candidate else None,
        )

    def _import_json(self, data: Union[bytes, str], source_kind: FileKind, session_id: str) -> CardImportResult:
        """Text -> JSON object -> record."""
        try:
            text = data.decode("utf-8-sig") if isinstance(data, bytes) else data
            value = json.loads(text)
        except ValueError as e:
            raise NoValidPayloadError(f"Card file is not valid JSON: {e}")
        except RecursionError:
            raise NoValidPayloadError("Card file JSON is nested too deeply to decode")

        if not isinstance(value, dict):
            raise NoValidPayloadError(f"Card JSON is a {type(value).__name__}, not an object")

        self._set_state(session_id, ImportState.VALIDATING)
        record = self.normalizer.build_record(value)
        warnings = self.normalizer.collect_warnings(value)
        return self._build_result(record, value, source_kind, warnings)

    @staticmethod
    def _build_result(
        record: CharacterRecord,
        value: Dict[str, Any],
        source_kind: FileKind,
        warnings: List[str],
        chunk_keyword: Optional[str] = None,
        chunk_origin: Optional[ChunkOrigin] = None
    ) -> CardImportResult:
        card_format, _ = SchemaNormalizer.unwrap(value)
        spec = value.get("spec") if "spec" in value else None
        spec_version = value.get("spec_version") if "spec" in value else None
        return CardImportResult(
            record=record,
            source_kind=source_kind,
            format=FormatDetector.get_format_name(card_format, spec),
            spec=str(spec) if spec is not None else None,
            spec_version=str(spec_version) if spec_version is not None else None,
            chunk_keyword=chunk_keyword,
            chunk_origin=chunk_origin,
            warnings=warnings,
        )

    def _notify(self, level: str, message: str) -> None:
        if self.notify is not None:
            self.notify(level, message)
