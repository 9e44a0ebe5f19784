from __future__ import annotations

import pytest

from core.note_converter.categories import (
    DATA,
    DOCUMENTS,
    MULTIMEDIA,
    OTHERS,
    WEB,
    classify,
    is_video,
    requires_api_key,
)
from core.note_converter.detection import (
    ConverterKind,
    check_signature,
    kind_for_mime,
    resolve_converter_kind,
)
from core.note_converter.errors import ResourceError, ValidationError
from core.note_converter.models import ItemType


def test_extension_detection_is_case_insensitive():
    assert resolve_converter_kind(ItemType.FILE, "Report.PDF") is ConverterKind.PDF
    assert resolve_converter_kind(ItemType.FILE, "data.YML") is ConverterKind.YAML


def test_extension_wins_over_declared_mime():
    assert resolve_converter_kind(ItemType.FILE, "notes.txt", "application/pdf") is ConverterKind.TXT


def test_mime_used_when_extension_unknown():
    assert resolve_converter_kind(ItemType.FILE, "upload", "application/pdf") is ConverterKind.PDF
    assert resolve_converter_kind(ItemType.FILE, "clip", "audio/mpeg") is ConverterKind.AUDIO
    assert kind_for_mime("text/csv; charset=utf-8") is ConverterKind.CSV


def test_item_types_map_to_their_converter():
    assert resolve_converter_kind(ItemType.URL, "https://example.com") is ConverterKind.URL
    assert resolve_converter_kind(ItemType.PARENT_URL, "example.com") is ConverterKind.PARENT_URL
    assert resolve_converter_kind(ItemType.YOUTUBE, "video") is ConverterKind.YOUTUBE
    assert resolve_converter_kind(ItemType.VIDEO, "movie.bin") is ConverterKind.VIDEO


def test_unknown_type_is_unsupported():
    with pytest.raises(ResourceError) as excinfo:
        resolve_converter_kind(ItemType.FILE, "archive.rar")
    assert excinfo.value.code == "UNSUPPORTED_TYPE"


def test_signature_check():
    check_signature(ConverterKind.PDF, b"%PDF-1.7")
    check_signature(ConverterKind.TXT, b"anything")
    with pytest.raises(ValidationError) as excinfo:
        check_signature(ConverterKind.DOCX, b"not a zip")
    assert excinfo.value.code == "INVALID_SIGNATURE"


@pytest.mark.parametrize(
    ("item_type", "extension", "expected"),
    [
        (ItemType.URL, "", WEB),
        (ItemType.PARENT_URL, "html", WEB),
        (ItemType.YOUTUBE, None, WEB),
        (ItemType.FILE, "pdf", DOCUMENTS),
        (ItemType.FILE, ".TXT", DOCUMENTS),
        (ItemType.FILE, "csv", DATA),
        (ItemType.FILE, "xlsx", DATA),
        (ItemType.AUDIO, "mp3", MULTIMEDIA),
        (ItemType.VIDEO, "", MULTIMEDIA),
        (ItemType.AUDIO, "pdf", MULTIMEDIA),
        (ItemType.FILE, "html", OTHERS),
        (ItemType.FILE, "", OTHERS),
    ],
)
def test_classify(item_type, extension, expected):
    assert classify(item_type, extension) == expected
    assert classify(item_type, extension) == classify(item_type, extension)


def test_media_helpers():
    assert is_video(ItemType.FILE, "mp4")
    assert is_video("video", None)
    assert not is_video(ItemType.AUDIO, "mp3")
    assert requires_api_key(ItemType.AUDIO, "")
    assert requires_api_key(ItemType.FILE, "wav")
    assert not requires_api_key(ItemType.URL, "mp3")
    assert not requires_api_key(ItemType.FILE, "pdf")


def test_open_document_and_rich_text_resolve():
    assert resolve_converter_kind(ItemType.FILE, "minutes.ODT") is ConverterKind.ODT
    assert resolve_converter_kind(ItemType.FILE, "letter.rtf") is ConverterKind.RTF
    assert resolve_converter_kind(ItemType.FILE, "letter", "text/rtf") is ConverterKind.RTF
    assert classify(ItemType.FILE, "odt") == DOCUMENTS
