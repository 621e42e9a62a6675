# tests/test_keys/test_file_keys.py

from datetime import datetime, timedelta, timezone

import pytest

from app.core.exceptions import ConfigurationError, InvalidArgument
from app.schemas.media import Environment
from app.utils.file_keys import derive_key, env_prefix, epoch_millis, parse_environment

NOW = datetime(2024, 12, 25, 10, 30, 56, 789000, tzinfo=timezone.utc)
NOW_MS = 1735122656789


def test_derive_key_dev_layout():
    key = derive_key("dev", "user", "user_123", "avatar", "jpg", NOW)
    assert key == f"d/user/user_123/avatar_{NOW_MS}.jpg"


@pytest.mark.parametrize(
    "env,prefix",
    [("dev", "d"), ("test", "t"), ("staging", "s"), ("production", "p"), (Environment.PRODUCTION, "p")],
)
def test_env_prefixes(env, prefix):
    assert env_prefix(env) == prefix
    assert derive_key(env, "course", "c1", "video", "mp4", NOW).startswith(f"{prefix}/course/c1/")


def test_environment_aliases_are_case_insensitive():
    assert parse_environment("Development") is Environment.DEV
    assert parse_environment(" PROD ") is Environment.PRODUCTION


@pytest.mark.parametrize("bad", ["qa", "", None, "preprod"])
def test_unknown_environment_is_a_configuration_error(bad):
    with pytest.raises(ConfigurationError):
        derive_key(bad, "user", "u1", "avatar", "jpg", NOW)


def test_extension_leading_dot_is_stripped():
    assert derive_key("dev", "user", "u1", "avatar", ".png", NOW).endswith(f"avatar_{NOW_MS}.png")


@pytest.mark.parametrize(
    "entity_type,entity_id,media_type,ext",
    [
        ("", "u1", "avatar", "jpg"),
        ("user", "a/b", "avatar", "jpg"),
        ("user", "u1", "   ", "jpg"),
        ("user", "u1", "avatar", ""),
        ("user", "u1", "avatar", "."),
        ("user", "..", "avatar", "jpg"),
    ],
)
def test_invalid_segments_rejected(entity_type, entity_id, media_type, ext):
    with pytest.raises(InvalidArgument):
        derive_key("dev", entity_type, entity_id, media_type, ext, NOW)


def test_derivation_is_pure():
    a = derive_key("staging", "user", "u1", "video", "mp4", NOW)
    b = derive_key("staging", "user", "u1", "video", "mp4", NOW)
    assert a == b


def test_keys_increase_with_time():
    a = derive_key("dev", "user", "u1", "video", "mp4", NOW)
    b = derive_key("dev", "user", "u1", "video", "mp4", NOW + timedelta(milliseconds=1))
    assert a != b
    assert int(a.rsplit("_", 1)[1].split(".")[0]) < int(b.rsplit("_", 1)[1].split(".")[0])


def test_epoch_millis_is_exact_and_treats_naive_as_utc():
    assert epoch_millis(NOW) == NOW_MS
    assert epoch_millis(NOW.replace(tzinfo=None)) == NOW_MS
    # sub-millisecond precision is truncated, never rounded
    assert epoch_millis(NOW + timedelta(microseconds=999)) == NOW_MS
    # far-future values stay exact
    far = datetime(2286, 11, 20, 17, 46, 39, 999000, tzinfo=timezone.utc)
    assert epoch_millis(far) == 9999999999999
