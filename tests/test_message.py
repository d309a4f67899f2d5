import json

import pytest

from symbol.signon.oauth.errors import SignatureVerificationError
from symbol.signon.oauth.message import decode_signed_message


def encode(document) -> bytes:
    return b"\x00" + json.dumps(document).encode("utf-8")


def test_decode_minimal_message():
    message = decode_signed_message(encode({"challenge": "abc"}))
    assert message.challenge == "abc"
    assert message.client_id is None
    assert message.state is None
    assert message.code_challenge is None


def test_decode_full_message_with_pkce_aliases():
    message = decode_signed_message(
        encode(
            {
                "client_id": "demo-app",
                "challenge": "abc",
                "state": "xyz",
                "pkce_challenge": "c" * 43,
                "pkce_challenge_method": "S256",
            }
        )
    )
    assert message.client_id == "demo-app"
    assert message.state == "xyz"
    assert message.code_challenge == "c" * 43
    assert message.code_challenge_method == "S256"


def test_decode_accepts_oauth_pkce_names():
    message = decode_signed_message(
        encode({"challenge": "abc", "code_challenge": "c" * 43})
    )
    assert message.code_challenge == "c" * 43


@pytest.mark.parametrize(
    "raw,reason",
    [
        (b"", "Message is empty."),
        (b"\x01" + b'{"challenge": "abc"}', "Challenge not found in payload"),
        (b"\x00\xff\xfe", "Invalid UTF-8 in transaction message"),
        (b"\x00not json", "Invalid JSON format in transaction message"),
        (b'\x00{"state": "xyz"}', "Missing challenge in transaction message"),
    ],
)
def test_decode_rejects(raw, reason):
    with pytest.raises(SignatureVerificationError, match=reason):
        decode_signed_message(raw)


@pytest.mark.parametrize(
    "document",
    [
        {"challenge": "abc", "admin": True},
        {"challenge": 123},
        {"challenge": "abc", "state": ["a", "b"]},
        {"challenge": ""},
        ["abc"],
    ],
)
def test_decode_rejects_schema_violations(document):
    with pytest.raises(SignatureVerificationError):
        decode_signed_message(encode(document))
