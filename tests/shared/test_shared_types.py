import logging

import pytest

from inv_shared import (
    ErrorCode,
    PackageSource,
    PreviewState,
    Result,
    classify_file,
    get_logger,
    normalize_type,
    relative_time,
    sanitize_error_message,
)


@pytest.mark.parametrize(
    "name,expected",
    [
        ("Textures/Rock.PNG", "image"),
        ("jingle.wav", "audio"),
        ("fbx", "model3d"),
        ("Prefabs/Door.prefab", "prefab"),
        ("thing.unknownext", "unknown"),
        ("", "unknown"),
    ],
)
def test_classify_file(name, expected):
    assert classify_file(name) == expected


def test_normalize_type_strips_dot_and_case():
    assert normalize_type("a/b/c.JPEG") == "jpeg"
    assert normalize_type(".Png") == "png"
    assert normalize_type("png") == "png"


def test_enum_parse_falls_back():
    assert PreviewState.parse("custom") is PreviewState.CUSTOM
    assert PreviewState.parse("bogus") is PreviewState.NONE
    assert PreviewState.parse(None) is PreviewState.NONE
    assert PackageSource.parse("ASSET_STORE") is PackageSource.ASSET_STORE
    assert PackageSource.parse("") is PackageSource.OTHER


def test_result_err_accepts_enum_codes():
    res = Result.Err(ErrorCode.BUSY, "busy")
    assert not res.ok
    assert res.code == "BUSY"
    assert res.unwrap_or(3) == 3
    with pytest.raises(ValueError):
        res.unwrap()
    assert Result.Ok(2).map(lambda v: v * 2).data == 4


def test_relative_time_uses_largest_unit():
    assert relative_time(0, reference=1) == "1 second ago"
    assert relative_time(0, reference=59) == "59 seconds ago"
    assert relative_time(0, reference=3600) == "1 hour ago"
    assert relative_time(0, reference=3 * 86400 + 5) == "3 days ago"
    assert relative_time(10, reference=0) == "0 seconds ago"


def test_sanitize_error_message_masks_paths():
    msg = sanitize_error_message(OSError("cannot open /home/user/secret/file.png"), "Copy failed")
    assert msg.startswith("Copy failed: ")
    assert "/home/user" not in msg
    assert sanitize_error_message(None, "Nothing") == "Nothing"


def test_get_logger_uses_feature_relative_name():
    logger = get_logger("inv_backend.features.previews.scheduler")
    assert logger.name == "assetinv.previews.scheduler"
    assert isinstance(logger, logging.Logger)


def test_emoji_formatter_includes_run_id():
    from inv_shared.log import EmojiFormatter, RunIdFilter, run_id_var

    record = logging.LogRecord("assetinv.previews.service", logging.WARNING, __file__, 1, "slow %s", ("disk",), None)
    token = run_id_var.set("abc123")
    try:
        RunIdFilter().filter(record)
    finally:
        run_id_var.reset(token)
    line = EmojiFormatter().format(record)
    assert line.endswith("previews.service [abc123]: slow disk")
    assert "⚠️" in line


def test_result_map_passes_errors_through():
    err = Result.Err("DB_ERROR", "locked")
    mapped = err.map(lambda v: v + 1)
    assert not mapped.ok
    assert (mapped.code, mapped.error) == ("DB_ERROR", "locked")
    assert Result.Ok(None).unwrap_or("fallback") == "fallback"
    assert Result.Ok(0).unwrap_or(5) == 0
