"""
PNG Metadata Handler
===================

Decodes tEXt, zTXt and iTXt chunks into keyword/text records.
"""

import logging
import zlib
from typing import Iterable, List, Optional, Tuple

from .models import Chunk, ChunkOrigin, TextChunkRecord
from .png_container import PNGContainerReader

logger = logging.getLogger(__name__)

COMPRESSION_METHOD_DEFLATE = 0

# Inflated text cap; matches CardImportConfig.max_text_chunk_bytes
DEFAULT_MAX_TEXT_BYTES = 8 * 1024 * 1024


class TextChunkError(ValueError):
    """A single text chunk is structurally unreadable."""
    pass


def _split_keyword(data: bytes) -> Tuple[str, bytes]:
    """Split `keyword NUL rest` into (keyword, rest)."""
    keyword, sep, rest = data.partition(b"\x00")
    if not sep:
        raise TextChunkError("missing keyword separator")
    return keyword.decode("latin-1"), rest


def _inflate(compressed: bytes, max_bytes: int) -> bytes:
    """
    Inflate a zlib stream, refusing output larger than max_bytes.

    Raises:
        zlib.error: Stream is corrupt, truncated or inflates past max_bytes
    """
    inflater = zlib.decompressobj()
    inflated = inflater.decompress(compressed, max_bytes + 1)
    if len(inflated) > max_bytes:
        raise zlib.error(f"inflated text exceeds {max_bytes} bytes")
    if not inflater.eof:
        raise zlib.error("incomplete or truncated stream")
    return inflated


class PNGMetadataHandler:
    """Handle PNG text chunk decoding for character card metadata."""

    @staticmethod
    def decode_text(data: bytes, max_text_bytes: int = DEFAULT_MAX_TEXT_BYTES) -> Tuple[str, str]:
        """Decode a tEXt payload: Latin-1 keyword and Latin-1 text."""
        keyword, text = _split_keyword(data)
        return keyword, text.decode("latin-1")

    @staticmethod
    def decode_ztxt(data: bytes, max_text_bytes: int = DEFAULT_MAX_TEXT_BYTES) -> Tuple[str, str]:
        """
        Decode a zTXt payload.

        Only compression method 0 (zlib) is understood. A stream that fails to
        inflate, inflates past max_text_bytes, or uses an unknown method yields
        empty text.
        """
        keyword, rest = _split_keyword(data)
        if not rest:
            raise TextChunkError("missing compression method")

        method, compressed = rest[0], rest[1:]
        if method != COMPRESSION_METHOD_DEFLATE:
            logger.warning(f"zTXt chunk '{keyword}' uses unsupported compression method {method}")
            return keyword, ""

        try:
            return keyword, _inflate(compressed, max_text_bytes).decode("latin-1")
        except zlib.error as e:
            logger.warning(f"Failed to inflate zTXt chunk '{keyword}': {e}")
            return keyword, ""

    @staticmethod
    def decode_itxt(data: bytes, max_text_bytes: int = DEFAULT_MAX_TEXT_BYTES) -> Tuple[str, str]:
        """
        Decode an iTXt payload.

        Layout: keyword NUL flag method language NUL translated-keyword NUL text.
        Compressed text (flag 1, method 0) is inflated; everything else is
        taken as UTF-8 directly.
        """
        keyword, rest = _split_keyword(data)
        if len(rest) < 2:
            raise TextChunkError("truncated compression fields")

        flag, method = rest[0], rest[1]
        _language, sep, rest = rest[2:].partition(b"\x00")
        if not sep:
            raise TextChunkError("missing language tag terminator")
        _translated, sep, text = rest.partition(b"\x00")
        if not sep:
            raise TextChunkError("missing translated keyword terminator")

        if flag == 1 and method == COMPRESSION_METHOD_DEFLATE:
            try:
                text = _inflate(text, max_text_bytes)
            except zlib.error as e:
                logger.warning(f"Failed to inflate iTXt chunk '{keyword}': {e}")
                return keyword, ""

        return keyword, text.decode("utf-8", errors="replace")

    @classmethod
    def decode_chunk(
        cls,
        chunk: Chunk,
        max_text_bytes: int = DEFAULT_MAX_TEXT_BYTES
    ) -> Optional[TextChunkRecord]:
        """
        Decode one chunk into a text record.

        Args:
            chunk: Chunk from PNGContainerReader
            max_text_bytes: Largest inflated text accepted from zTXt/iTXt

        Returns:
            TextChunkRecord, or None for non-text chunks and unreadable text chunks
        """
        decoders = {
            ChunkOrigin.TEXT.value: (ChunkOrigin.TEXT, cls.decode_text),
            ChunkOrigin.ZTXT.value: (ChunkOrigin.ZTXT, cls.decode_ztxt),
            ChunkOrigin.ITXT.value: (ChunkOrigin.ITXT, cls.decode_itxt),
        }
        entry = decoders.get(chunk.tag)
        if entry is None:
            return None

        origin, decoder = entry
        try:
            keyword, text = decoder(chunk.data, max_text_bytes)
        except TextChunkError as e:
            logger.warning(f"Skipping unreadable {chunk.tag} chunk: {e}")
            return None

        logger.debug(f"Decoded {chunk.tag} chunk '{keyword}' ({len(text)} chars)")
        return TextChunkRecord(keyword=keyword, text=text, origin=origin)

    @classmethod
    def decode_text_chunks(
        cls,
        chunks: Iterable[Chunk],
        max_text_bytes: int = DEFAULT_MAX_TEXT_BYTES
    ) -> List[TextChunkRecord]:
        """
        Decode every text chunk independently.

        Args:
            chunks: Chunks from PNGContainerReader
            max_text_bytes: Largest inflated text accepted from zTXt/iTXt

        Returns:
            Text records in chunk order
        """
        records = []
        for chunk in chunks:
            record = cls.decode_chunk(chunk, max_text_bytes)
            if record is not None:
                records.append(record)
        return records

    @classmethod
    def read_text_chunks(
        cls,
        png_data: bytes,
        max_text_bytes: int = DEFAULT_MAX_TEXT_BYTES
    ) -> List[TextChunkRecord]:
        """
        Extract all text chunk records from PNG data.

        Args:
            png_data: PNG file data as bytes
            max_text_bytes: Largest inflated text accepted from zTXt/iTXt

        Returns:
            Text records in file order

        Raises:
            MalformedContainerError: PNG data is not a valid chunk stream
        """
        return cls.decode_text_chunks(PNGContainerReader.read_chunks(png_data), max_text_bytes)
