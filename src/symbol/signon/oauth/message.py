"""
Schema for the JSON document a client embeds in the signed transfer message.

The wallet signs a transfer transaction whose message field is a ``0x00`` marker
byte followed by UTF-8 JSON::

    {"client_id": "...", "challenge": "...", "state": "...",
     "pkce_challenge": "...", "pkce_challenge_method": "S256"}

Only ``challenge`` is required. The PKCE fields are also accepted under their
OAuth names (``code_challenge``, ``code_challenge_method``). Any other key, or a
value of the wrong type, rejects the message.
"""

from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from symbol.signon.oauth.errors import SignatureVerificationError

PLAIN_MESSAGE_MARKER = 0x00


class SignedMessage(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True, frozen=True)

    challenge: str = Field(min_length=1)
    client_id: Optional[str] = Field(default=None, min_length=1)
    state: Optional[str] = None
    code_challenge: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("pkce_challenge", "code_challenge"),
    )
    code_challenge_method: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("pkce_challenge_method", "code_challenge_method"),
    )


def decode_signed_message(message: bytes) -> SignedMessage:
    """
    Decode and validate the message field of a verified transfer transaction.

    Raises:
        SignatureVerificationError: If the message is empty, not a plain message,
            not UTF-8, not JSON, or does not match the schema
    """
    if len(message) == 0:
        raise SignatureVerificationError("Message is empty.")

    if message[0] != PLAIN_MESSAGE_MARKER:
        raise SignatureVerificationError("Challenge not found in payload")

    try:
        message_text = message[1:].decode("utf-8")
    except UnicodeDecodeError as e:
        raise SignatureVerificationError(
            "Invalid UTF-8 in transaction message"
        ) from e

    try:
        return SignedMessage.model_validate_json(message_text)
    except ValidationError as e:
        errors = e.errors()
        if any(error["type"] == "json_invalid" for error in errors):
            raise SignatureVerificationError(
                "Invalid JSON format in transaction message"
            ) from e
        if any(
            error["type"] == "missing" and error["loc"] == ("challenge",)
            for error in errors
        ):
            raise SignatureVerificationError(
                "Missing challenge in transaction message"
            ) from e
        fields = ", ".join(
            ".".join(str(part) for part in error["loc"]) or "message"
            for error in errors
        )
        raise SignatureVerificationError(
            f"Invalid transaction message: {fields}"
        ) from e
