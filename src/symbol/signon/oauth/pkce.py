"""Proof Key for Code Exchange (RFC 7636).

Only the ``S256`` transformation is computed. The ``plain`` method is compared
directly and only when a deployment opts in to it.
"""

import base64
import hashlib
import secrets
from typing import Optional, Tuple

S256 = "S256"
PLAIN = "plain"
SUPPORTED_METHODS = (S256, PLAIN)


class UnsupportedPKCEMethod(ValueError):
    def __init__(self, method: Optional[str]) -> None:
        super().__init__(f"Unsupported PKCE method: {method}")
        self.method = method


def compute_code_challenge(verifier: str, method: str = S256) -> str:
    """Derive the code challenge for a code verifier.

    ``S256`` is the unpadded base64url encoding of the SHA-256 digest of the
    verifier's ASCII bytes.

    Raises:
        UnsupportedPKCEMethod: For any method other than ``S256``
    """
    if method != S256:
        raise UnsupportedPKCEMethod(method)

    hashed = hashlib.sha256(verifier.encode("ascii")).digest()
    encoded = base64.urlsafe_b64encode(hashed)
    return encoded.decode("ascii").rstrip("=")


def verify_code_verifier(
    verifier: str,
    code_challenge: str,
    method: Optional[str],
    allow_plain: bool = False,
) -> bool:
    """Check a code verifier against the challenge stored with an authorization code.

    A missing method is treated as ``S256``. Comparison is constant time.

    Raises:
        UnsupportedPKCEMethod: If the method is unknown, or ``plain`` while it is disabled
        UnicodeEncodeError: If the verifier contains non-ASCII characters
    """
    method = method or S256

    if method == PLAIN:
        if not allow_plain:
            raise UnsupportedPKCEMethod(method)
        expected = verifier
    else:
        expected = compute_code_challenge(verifier, method)

    return secrets.compare_digest(
        expected.encode("utf-8"), code_challenge.encode("utf-8")
    )


def generate_pkce_verifier() -> Tuple[str, str]:
    """
    Generate a PKCE verifier and its S256 challenge.

    The verifier uses 64 random bytes, which encode to 86 characters and stay
    inside the 43 to 128 character range of RFC 7636 section 4.1.

    Returns:
        Tuple[str, str]: (pkce_verifier, pkce_challenge)
    """
    pkce_verifier = secrets.token_urlsafe(64)
    return (pkce_verifier, compute_code_challenge(pkce_verifier, S256))
