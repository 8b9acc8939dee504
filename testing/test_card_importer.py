"""
Tests for CharacterCardImporter.

Covers:
- PNG cards end to end (tEXt/zTXt/iTXt, plain and base64 payloads)
- JSON and V2 card files from disk and from memory
- Session lifecycle: sticky FAILED/SUCCESS states and reset
- Accept callback and user notifications
- File kind detection, size limit and checksum warnings
"""

import asyncio
import json

import pytest

from companion_cards.config import CardImportConfig
from companion_cards.services.character_cards.card_importer import (
    CharacterCardImporter,
    detect_file_kind,
    encode_avatar,
)
from companion_cards.services.character_cards.exceptions import (
    CardImportError,
    ImportSessionError,
    MalformedContainerError,
    MissingRequiredFieldError,
    NoValidPayloadError,
    UnsupportedFileError,
    UnsupportedSchemaError,
)
from companion_cards.services.character_cards.models import ChunkOrigin, FileKind, ImportState
from card_fixtures import (
    PNG_SIGNATURE,
    b64_json,
    build_chunk,
    build_png,
    itxt_chunk,
    text_chunk,
    ztxt_chunk,
)


@pytest.fixture
def importer():
    return CharacterCardImporter()


def run_import(importer, source, **kwargs):
    """Open a session and import one source."""
    session_id = importer.open_session()
    result = asyncio.run(importer.import_file(session_id, source, **kwargs))
    return session_id, result


# ===========================
# PNG cards
# ===========================

class TestPngImport:

    def test_base64_text_chunk_card(self, importer, wrapped_card):
        png = build_png([text_chunk("Software", "Krita"), text_chunk("chara", b64_json(wrapped_card))])

        session_id, result = run_import(importer, png)

        assert importer.state(session_id) == ImportState.SUCCESS
        assert result.source_kind == FileKind.PNG
        assert result.record.name == "Seraphina"
        assert result.record.system_prompt == "Stay in character."
        assert result.format == "Wrapped (chara_card_v2)"
        assert result.spec == "chara_card_v2"
        assert result.spec_version == "2.0"
        assert result.chunk_keyword == "chara"
        assert result.chunk_origin == ChunkOrigin.TEXT
        assert result.warnings == []

    def test_avatar_is_the_card_image(self, importer, wrapped_card):
        png = build_png([text_chunk("chara", b64_json(wrapped_card))])

        _, result = run_import(importer, png)

        assert result.record.avatar == encode_avatar(png)
        assert result.record.avatar.startswith("data:image/png;base64,")

    def test_details_are_backfilled_from_description(self, importer, wrapped_card):
        png = build_png([text_chunk("chara", b64_json(wrapped_card))])

        _, result = run_import(importer, png)

        assert result.record.age == "27"
        assert result.record.race == "elf"
        assert result.record.occupation == "healer"

    def test_text_chunk_preferred_over_ztxt(self, importer):
        png = build_png([
            ztxt_chunk("chara", json.dumps({"name": "Compressed"})),
            text_chunk("chara", json.dumps({"name": "Plain"})),
        ])

        _, result = run_import(importer, png)

        assert result.record.name == "Plain"

    def test_ztxt_card_matches_uncompressed_card(self, importer, wrapped_card):
        payload = b64_json(wrapped_card)

        _, plain = run_import(importer, build_png([text_chunk("chara", payload)]))
        _, packed = run_import(importer, build_png([ztxt_chunk("chara", payload)]))

        assert packed.chunk_origin == ChunkOrigin.ZTXT
        plain_record = plain.record.to_dict()
        packed_record = packed.record.to_dict()
        plain_record.pop("avatar")
        packed_record.pop("avatar")
        assert plain_record == packed_record

    def test_compressed_itxt_card(self, importer):
        png = build_png([itxt_chunk("chara", json.dumps({"name": "Zoë"}, ensure_ascii=False), compressed=True)])

        _, result = run_import(importer, png)

        assert result.record.name == "Zoë"
        assert result.chunk_origin == ChunkOrigin.ITXT

    def test_json_looking_text_under_any_keyword(self, importer):
        png = build_png([text_chunk("Comment", json.dumps({"name": "Loose"}))])

        _, result = run_import(importer, png)

        assert result.record.name == "Loose"
        assert result.format == "Flat"
        assert result.chunk_keyword == "Comment"

    def test_bad_first_candidate_falls_through(self, importer):
        png = build_png([
            text_chunk("chara", "not a card"),
            ztxt_chunk("chara", b64_json({"name": "Fallback"})),
        ])

        _, result = run_import(importer, png)

        assert result.record.name == "Fallback"

    def test_png_without_card_data(self, importer):
        png = build_png([text_chunk("Software", "Krita")])
        session_id = importer.open_session()

        with pytest.raises(NoValidPayloadError):
            asyncio.run(importer.import_file(session_id, png))

        assert importer.state(session_id) == ImportState.FAILED

    def test_malformed_container(self, importer):
        session_id = importer.open_session()

        with pytest.raises(MalformedContainerError):
            asyncio.run(importer.import_file(session_id, PNG_SIGNATURE + b"\x00\x00"))

        assert importer.state(session_id) == ImportState.FAILED

    def test_nameless_card(self, importer):
        png = build_png([text_chunk("chara", b64_json({"spec": "chara_card_v2", "data": {"description": "?"}}))])

        with pytest.raises(MissingRequiredFieldError):
            run_import(importer, png)

    def test_bad_checksum_is_a_warning(self, importer):
        png = (
            PNG_SIGNATURE
            + build_chunk(b"tEXt", b"chara\x00" + json.dumps({"name": "Crc"}).encode(), crc=0)
            + build_chunk(b"IEND", b"")
        )

        _, result = run_import(importer, png)

        assert result.record.name == "Crc"
        assert result.warnings == ["PNG tEXt chunk has a bad checksum"]

    def test_checksum_warnings_can_be_disabled(self):
        importer = CharacterCardImporter(config=CardImportConfig(warn_on_crc_mismatch=False))
        png = (
            PNG_SIGNATURE
            + build_chunk(b"tEXt", b"chara\x00" + json.dumps({"name": "Crc"}).encode(), crc=0)
            + build_chunk(b"IEND", b"")
        )

        _, result = run_import(importer, png)

        assert result.warnings == []

    def test_lorebook_warning(self, importer, wrapped_card):
        wrapped_card["data"]["character_book"] = {"name": "Forest lore", "entries": []}
        png = build_png([text_chunk("chara", b64_json(wrapped_card))])

        _, result = run_import(importer, png)

        assert any("lorebook" in w for w in result.warnings)


# ===========================
# JSON cards
# ===========================

class TestJsonImport:

    def test_flat_json_bytes(self, importer):
        data = json.dumps({"name": "Nelliel", "systemPrompt": "Hi"}).encode("utf-8")

        _, result = run_import(importer, data, filename="nelliel.json")

        assert result.source_kind == FileKind.JSON
        assert result.record.name == "Nelliel"
        assert result.record.avatar == ""
        assert result.format == "Flat"
        assert result.spec is None
        assert result.chunk_origin is None

    def test_json_file_with_bom(self, importer, tmp_path, wrapped_card):
        path = tmp_path / "seraphina.json"
        path.write_bytes(b"\xef\xbb\xbf" + json.dumps(wrapped_card).encode("utf-8"))

        _, result = run_import(importer, path)

        assert result.source_kind == FileKind.JSON
        assert result.record.name == "Seraphina"
        assert result.record.avatar == "https://example.com/embedded-avatar.png"

    def test_v2_card_file(self, importer, tmp_path, wrapped_card):
        path = tmp_path / "seraphina.card"
        path.write_text(json.dumps(wrapped_card), encoding="utf-8")

        _, result = run_import(importer, str(path))

        assert result.source_kind == FileKind.V2_CARD
        assert result.format == "Wrapped (chara_card_v2)"

    def test_png_file_on_disk(self, importer, tmp_path, wrapped_card):
        png = build_png([text_chunk("chara", b64_json(wrapped_card))])
        path = tmp_path / "card.png"
        path.write_bytes(png)

        _, result = run_import(importer, path)

        assert result.source_kind == FileKind.PNG
        assert result.record.avatar == encode_avatar(png)

    def test_png_content_with_unknown_extension_is_sniffed(self, importer, tmp_path):
        path = tmp_path / "download.bin"
        path.write_bytes(build_png([text_chunk("chara", b64_json({"name": "Sniffed"}))]))

        _, result = run_import(importer, path)

        assert result.source_kind == FileKind.PNG
        assert result.record.name == "Sniffed"

    def test_declared_kind_overrides_extension(self, importer, tmp_path):
        path = tmp_path / "card.txt"
        path.write_text(json.dumps({"name": "Declared"}), encoding="utf-8")

        _, result = run_import(importer, path, kind=FileKind.V2_CARD)

        assert result.source_kind == FileKind.V2_CARD
        assert result.record.name == "Declared"

    def test_invalid_json(self, importer):
        with pytest.raises(NoValidPayloadError):
            run_import(importer, b"{ not json", filename="broken.json")

    def test_json_array(self, importer):
        with pytest.raises(NoValidPayloadError):
            run_import(importer, b'[{"name": "A"}]', kind=FileKind.JSON)

    def test_unknown_schema(self, importer):
        data = json.dumps({"spec": "chara_card_v9", "name": "A"}).encode()

        with pytest.raises(UnsupportedSchemaError):
            run_import(importer, data, kind=FileKind.JSON)

    def test_missing_file(self, importer, tmp_path):
        session_id = importer.open_session()

        with pytest.raises(UnsupportedFileError) as exc_info:
            asyncio.run(importer.import_file(session_id, tmp_path / "missing.json"))

        assert exc_info.value.user_message == "The selected file could not be read."
        assert importer.state(session_id) == ImportState.FAILED

    def test_file_over_size_limit(self, tmp_path):
        importer = CharacterCardImporter(config=CardImportConfig(max_file_size_bytes=16))
        path = tmp_path / "big.json"
        path.write_text(json.dumps({"name": "A" * 64}), encoding="utf-8")

        with pytest.raises(UnsupportedFileError, match="limit 16"):
            run_import(importer, path)

    def test_bytes_over_size_limit(self):
        importer = CharacterCardImporter(config=CardImportConfig(max_file_size_bytes=16))

        with pytest.raises(UnsupportedFileError):
            run_import(importer, json.dumps({"name": "A" * 64}).encode(), kind=FileKind.JSON)


# ===========================
# Sessions, callbacks, notifications
# ===========================

class TestSessions:

    def test_new_session_is_idle(self, importer):
        assert importer.state(importer.open_session()) == ImportState.IDLE

    def test_unknown_session(self, importer):
        with pytest.raises(ImportSessionError):
            importer.state("nope")

    def test_failed_session_refuses_new_attempts_until_reset(self, importer):
        session_id = importer.open_session()
        good = json.dumps({"name": "Second try"}).encode()

        with pytest.raises(NoValidPayloadError):
            asyncio.run(importer.import_file(session_id, b"{ broken", kind=FileKind.JSON))
        with pytest.raises(ImportSessionError):
            asyncio.run(importer.import_file(session_id, good, kind=FileKind.JSON))
        assert importer.state(session_id) == ImportState.FAILED

        importer.reset(session_id)
        result = asyncio.run(importer.import_file(session_id, good, kind=FileKind.JSON))

        assert result.record.name == "Second try"
        assert importer.state(session_id) == ImportState.SUCCESS

    def test_successful_session_is_terminal(self, importer):
        session_id, _ = run_import(importer, b'{"name": "A"}', kind=FileKind.JSON)

        with pytest.raises(ImportSessionError):
            asyncio.run(importer.import_file(session_id, b'{"name": "B"}', kind=FileKind.JSON))

    def test_reset_refuses_in_flight_session(self, importer):
        session_id = importer.open_session()
        importer._set_state(session_id, ImportState.PARSING)

        with pytest.raises(ImportSessionError):
            importer.reset(session_id)

    def test_sessions_are_independent(self, importer):
        first = importer.open_session()
        second = importer.open_session()

        with pytest.raises(NoValidPayloadError):
            asyncio.run(importer.import_file(first, b"{ broken", kind=FileKind.JSON))

        result = asyncio.run(importer.import_file(second, b'{"name": "B"}', kind=FileKind.JSON))

        assert result.record.name == "B"
        assert importer.state(first) == ImportState.FAILED

    def test_close_session(self, importer):
        session_id = importer.open_session()
        importer.close_session(session_id)

        with pytest.raises(ImportSessionError):
            importer.state(session_id)


class TestCallbacks:

    def test_sync_accept_callback_and_notify(self):
        accepted = []
        notices = []
        importer = CharacterCardImporter(accept_callback=accepted.append, notify=lambda *n: notices.append(n))

        _, result = run_import(importer, b'{"name": "Ann"}', kind=FileKind.JSON)

        assert accepted == [result.record]
        assert notices == [("success", "Imported Ann")]

    def test_async_accept_callback(self):
        accepted = []

        async def accept(record):
            await asyncio.sleep(0)
            accepted.append(record.name)

        importer = CharacterCardImporter(accept_callback=accept)

        run_import(importer, b'{"name": "Ann"}', kind=FileKind.JSON)

        assert accepted == ["Ann"]

    def test_failure_notifies_and_skips_callback(self):
        accepted = []
        notices = []
        importer = CharacterCardImporter(accept_callback=accepted.append, notify=lambda *n: notices.append(n))

        with pytest.raises(NoValidPayloadError):
            run_import(importer, build_png([text_chunk("Software", "Krita")]))

        assert accepted == []
        assert notices == [("error", "No valid character data found.")]


# ===========================
# File kind detection
# ===========================

class TestDetectFileKind:

    def test_declared_kind_wins(self):
        assert detect_file_kind(build_png(), "card.json", FileKind.JSON) == FileKind.JSON

    def test_png_signature_beats_extension(self):
        assert detect_file_kind(build_png(), "card.json") == FileKind.PNG

    def test_extension(self):
        assert detect_file_kind(b"", "card.PNG") == FileKind.PNG
        assert detect_file_kind(b"", "card.json") == FileKind.JSON
        assert detect_file_kind(b"", "card.v2") == FileKind.V2_CARD

    def test_json_content_sniffing(self):
        assert detect_file_kind(b'\xef\xbb\xbf\n  {"name": "A"}', "card.txt") == FileKind.JSON

    def test_unknown(self):
        with pytest.raises(UnsupportedFileError):
            detect_file_kind(b"GIF89a", "card.gif")


# ===========================
# Failure recovery
# ===========================

def deeply_nested_card(depth=200000):
    return '{"name": "Deep", "a": ' + "[" * depth + "]" * depth + "}"


class TestFailureRecovery:

    def test_too_deeply_nested_json_file_fails_cleanly(self, importer):
        notices = []
        importer.notify = lambda *n: notices.append(n)
        session_id = importer.open_session()

        with pytest.raises(NoValidPayloadError):
            asyncio.run(importer.import_file(session_id, deeply_nested_card().encode(), filename="x.json"))

        assert importer.state(session_id) == ImportState.FAILED
        assert notices == [("error", "No valid character data found.")]
        importer.reset(session_id)
        assert importer.state(session_id) == ImportState.IDLE

    def test_too_deeply_nested_png_candidate_falls_through(self, importer):
        png = build_png([
            text_chunk("chara", deeply_nested_card()),
            ztxt_chunk("chara", json.dumps({"name": "Shallow"})),
        ])

        _, result = run_import(importer, png)

        assert result.record.name == "Shallow"

    def test_callback_failure_marks_session_failed(self):
        notices = []

        def reject(record):
            raise RuntimeError("store unavailable")

        importer = CharacterCardImporter(accept_callback=reject, notify=lambda *n: notices.append(n))
        session_id = importer.open_session()

        with pytest.raises(CardImportError) as exc_info:
            asyncio.run(importer.import_file(session_id, b'{"name": "Ann"}', kind=FileKind.JSON))

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert importer.state(session_id) == ImportState.FAILED
        assert notices == [("error", "Failed to import character card.")]

    def test_async_callback_failure_marks_session_failed(self):
        async def reject(record):
            raise RuntimeError("store unavailable")

        importer = CharacterCardImporter(accept_callback=reject)
        session_id = importer.open_session()

        with pytest.raises(CardImportError):
            asyncio.run(importer.import_file(session_id, b'{"name": "Ann"}', kind=FileKind.JSON))

        assert importer.state(session_id) == ImportState.FAILED

    def test_callback_sees_record_before_success(self):
        seen = []
        importer = CharacterCardImporter(accept_callback=lambda record: seen.append(importer.state(session_id)))
        session_id = importer.open_session()

        asyncio.run(importer.import_file(session_id, b'{"name": "Ann"}', kind=FileKind.JSON))

        assert seen == [ImportState.VALIDATING]
        assert importer.state(session_id) == ImportState.SUCCESS

    def test_png_saved_with_json_extension(self, importer, tmp_path, wrapped_card):
        path = tmp_path / "card.json"
        path.write_bytes(build_png([text_chunk("chara", b64_json(wrapped_card))]))

        _, result = run_import(importer, path)

        assert result.source_kind == FileKind.PNG
        assert result.record.name == "Seraphina"

    def test_oversized_ztxt_is_skipped(self):
        importer = CharacterCardImporter(config=CardImportConfig(max_text_chunk_bytes=64))
        png = build_png([
            ztxt_chunk("chara", json.dumps({"name": "Huge", "description": " " * 4096})),
            ztxt_chunk("chara", json.dumps({"name": "Small"})),
        ])

        _, result = run_import(importer, png)

        assert result.record.name == "Small"
