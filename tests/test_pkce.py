import pytest

from symbol.signon.oauth.pkce import (
    PLAIN,
    S256,
    UnsupportedPKCEMethod,
    compute_code_challenge,
    generate_pkce_verifier,
    verify_code_verifier,
)
from tests.test_helpers import RFC7636_CHALLENGE, RFC7636_VERIFIER


def test_compute_code_challenge_rfc7636_vector():
    assert compute_code_challenge(RFC7636_VERIFIER) == RFC7636_CHALLENGE


def test_compute_code_challenge_only_s256():
    with pytest.raises(UnsupportedPKCEMethod):
        compute_code_challenge(RFC7636_VERIFIER, PLAIN)


def test_verify_code_verifier_s256():
    assert verify_code_verifier(RFC7636_VERIFIER, RFC7636_CHALLENGE, S256)
    assert not verify_code_verifier(RFC7636_VERIFIER + "x", RFC7636_CHALLENGE, S256)


def test_verify_code_verifier_missing_method_means_s256():
    assert verify_code_verifier(RFC7636_VERIFIER, RFC7636_CHALLENGE, None)


def test_verify_code_verifier_plain_requires_opt_in():
    with pytest.raises(UnsupportedPKCEMethod):
        verify_code_verifier("a" * 43, "a" * 43, PLAIN)

    assert verify_code_verifier("a" * 43, "a" * 43, PLAIN, allow_plain=True)
    assert not verify_code_verifier("a" * 43, "b" * 43, PLAIN, allow_plain=True)


def test_verify_code_verifier_unknown_method():
    with pytest.raises(UnsupportedPKCEMethod) as excinfo:
        verify_code_verifier(RFC7636_VERIFIER, RFC7636_CHALLENGE, "S512")
    assert excinfo.value.method == "S512"


def test_generate_pkce_verifier():
    pkce_verifier, pkce_challenge = generate_pkce_verifier()
    assert 43 <= len(pkce_verifier) <= 128
    assert "=" not in pkce_challenge
    assert compute_code_challenge(pkce_verifier) == pkce_challenge
