"""
lifevault/test_utils.py

Pure helper tests: phone normalization, token hashing, timestamps, JSON.
"""

import pytest

from lifevault.utils import (
    generate_otp,
    generate_refresh_token,
    hash_token,
    is_past,
    iso_in,
    load_json_dict,
    load_json_list,
    normalize_phone,
    now_iso,
    parse_iso,
    safe_float,
    verify_token_hash,
)


@pytest.mark.parametrize("raw,expected", [
    ("9876543210", "+919876543210"),
    ("98765 43210", "+919876543210"),
    ("(987) 654-3210", "+919876543210"),
    ("919876543210", "+919876543210"),
    ("+91 98765 43210", "+919876543210"),
    ("+14155550123", "+14155550123"),
])
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


def test_safe_float():
    assert safe_float("12.5") == 12.5
    assert safe_float(None) == 0.0
    assert safe_float("abc") == 0.0


def test_otp_is_six_digits():
    for _ in range(20):
        code = generate_otp()
        assert len(code) == 6
        assert code.isdigit()


def test_token_hash_roundtrip():
    token = generate_refresh_token()
    digest = hash_token(token)
    assert digest != token
    assert verify_token_hash(token, digest)
    assert not verify_token_hash(token + "x", digest)
    assert not verify_token_hash(token, None)


def test_timestamps():
    stamp = now_iso()
    assert stamp.endswith("Z")
    assert parse_iso(stamp) is not None
    assert is_past(iso_in(minutes=-1))
    assert not is_past(iso_in(minutes=5))
    assert not is_past(None)


def test_json_loaders_tolerate_garbage():
    assert load_json_list('["a", "b"]') == ["a", "b"]
    assert load_json_list('{"a": 1}') == []
    assert load_json_list("not json") == []
    assert load_json_list(None) == []
    assert load_json_dict('{"a": 1}') == {"a": 1}
    assert load_json_dict("[1]") == {}
    assert load_json_dict("") == {}
