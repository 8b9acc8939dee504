"""
Tests for PNG container reading.

Usage:
    pytest testing/test_png_container.py
"""

import struct
import zlib

import pytest

from companion_cards.services.character_cards.exceptions import MalformedContainerError
from companion_cards.services.character_cards.models import Chunk
from companion_cards.services.character_cards.png_container import (
    PNGContainerReader,
    chunk_crc_matches,
    is_png_data,
)
from card_fixtures import PNG_SIGNATURE, build_chunk, build_png, text_chunk


def test_reads_chunks_in_file_order():
    png = build_png([text_chunk("chara", "abc"), text_chunk("Comment", "hi")])

    chunks = PNGContainerReader.read_chunks(png)

    assert [c.tag for c in chunks] == ["IHDR", "tEXt", "tEXt", "IDAT", "IEND"]
    assert chunks[1].data == b"chara\x00abc"
    assert chunks[-1].data == b""


def test_missing_signature_is_malformed():
    with pytest.raises(MalformedContainerError):
        PNGContainerReader.read_chunks(b"GIF89a" + b"\x00" * 20)


def test_empty_buffer_is_malformed():
    with pytest.raises(MalformedContainerError):
        PNGContainerReader.read_chunks(b"")


def test_length_past_end_of_buffer_is_malformed():
    png = PNG_SIGNATURE + struct.pack(">I", 1000) + b"tEXt" + b"short"

    with pytest.raises(MalformedContainerError):
        PNGContainerReader.read_chunks(png)


def test_truncated_header_is_malformed():
    png = build_png()[:-12] + b"\x00\x00"

    with pytest.raises(MalformedContainerError):
        PNGContainerReader.read_chunks(png)


def test_stops_at_iend_and_ignores_trailing_bytes():
    png = build_png() + b"trailing garbage that is not a chunk"

    chunks = PNGContainerReader.read_chunks(png)

    assert chunks[-1].tag == "IEND"


def test_stream_without_iend_is_accepted():
    png = build_png([text_chunk("chara", "x")], include_iend=False)

    chunks = PNGContainerReader.read_chunks(png)

    assert [c.tag for c in chunks] == ["IHDR", "tEXt", "IDAT"]


def test_bad_crc_does_not_reject_chunk():
    png = PNG_SIGNATURE + build_chunk(b"tEXt", b"chara\x00{}", crc=0xDEADBEEF) + build_chunk(b"IEND", b"")

    chunks = PNGContainerReader.read_chunks(png)

    assert chunks[0].tag == "tEXt"
    assert chunks[0].crc == 0xDEADBEEF
    assert not chunk_crc_matches(chunks[0])
    assert chunk_crc_matches(chunks[1])


def test_chunks_are_immutable():
    chunk = PNGContainerReader.read_chunks(build_png())[0]

    with pytest.raises(AttributeError):
        chunk.tag = "tEXt"


def test_is_png_data():
    assert is_png_data(build_png())
    assert not is_png_data(b"{\"name\": \"x\"}")
    assert not is_png_data(PNG_SIGNATURE[:4])


def test_chunk_crc_matches_for_computed_checksum():
    chunk = Chunk(tag="tEXt", data=b"a\x00b", crc=zlib.crc32(b"tEXta\x00b") & 0xFFFFFFFF)

    assert chunk_crc_matches(chunk)
