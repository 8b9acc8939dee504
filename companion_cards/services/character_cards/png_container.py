"""
PNG Container Reader
===================

Splits a raw PNG byte buffer into its ordered chunk list. No chunk payload is
interpreted here.
"""

import logging
import struct
import zlib
from typing import List

from .exceptions import MalformedContainerError
from .models import Chunk

logger = logging.getLogger(__name__)

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

# length (4) + type (4) before the payload, CRC (4) after it
_CHUNK_HEADER = struct.Struct(">I4s")
_CRC_SIZE = 4


def is_png_data(data: bytes) -> bool:
    """Check whether the buffer starts with the PNG signature."""
    return len(data) >= len(PNG_SIGNATURE) and data.startswith(PNG_SIGNATURE)


def chunk_crc_matches(chunk: Chunk) -> bool:
    """Compare the stored CRC against one computed over type and data."""
    computed = zlib.crc32(chunk.tag.encode("latin-1") + chunk.data) & 0xFFFFFFFF
    return computed == chunk.crc


class PNGContainerReader:
    """Walk the chunk layout of a PNG file."""

    @staticmethod
    def read_chunks(png_data: bytes) -> List[Chunk]:
        """
        Split PNG data into chunks.

        Args:
            png_data: PNG file data as bytes

        Returns:
            Chunks in file order, up to and including IEND

        Raises:
            MalformedContainerError: Signature missing or a chunk runs past the end of the buffer
        """
        if not is_png_data(png_data):
            raise MalformedContainerError("PNG signature not found")

        chunks: List[Chunk] = []
        pos = len(PNG_SIGNATURE)
        total = len(png_data)

        while pos < total:
            if pos + _CHUNK_HEADER.size > total:
                raise MalformedContainerError(
                    f"Truncated chunk header at offset {pos} ({total - pos} bytes left)"
                )

            length, raw_tag = _CHUNK_HEADER.unpack_from(png_data, pos)
            data_start = pos + _CHUNK_HEADER.size
            data_end = data_start + length
            if data_end + _CRC_SIZE > total:
                raise MalformedContainerError(
                    f"Chunk at offset {pos} declares {length} bytes, past the end of the buffer"
                )

            tag = raw_tag.decode("latin-1")
            crc = struct.unpack_from(">I", png_data, data_end)[0]
            chunks.append(Chunk(tag=tag, data=bytes(png_data[data_start:data_end]), crc=crc))
            pos = data_end + _CRC_SIZE

            if tag == "IEND":
                if pos < total:
                    logger.debug(f"Ignoring {total - pos} trailing bytes after IEND")
                break
        else:
            logger.debug("PNG stream ended without an IEND chunk")

        logger.debug(f"Read {len(chunks)} PNG chunks: {[c.tag for c in chunks]}")
        return chunks
