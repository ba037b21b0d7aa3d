"""
Cipher Configuration — validated runtime settings for the encryption core.

Reads overrides from environment variables:
    NOTECIPHER_MAX_ATTACHMENT_SIZE = <bytes>
    NOTECIPHER_MAX_PLAINTEXT_SIZE = <bytes>
    NOTECIPHER_SESSION_KEY = <session storage entry name>

Security Note:
    Key derivation parameters are not configurable here. Every client
    must use byte-identical KDF settings or stored notes become
    unreadable across devices.
"""
import os
import logging

from pydantic import BaseModel, Field, field_validator, model_validator

from ..conf import MAX_ATTACHMENT_SIZE, MAX_PLAINTEXT_SIZE, SESSION_KEY

logger = logging.getLogger("notecipher.vault")

_MIN_PAYLOAD_SIZE = 1024


def _env_int(name: str, default: int) -> int:
    """Read an integer environment variable, falling back to default.

    Raises:
        ValueError: If the variable is set but not a valid integer.
    """
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


class CipherConfig(BaseModel):
    """Validated encryption-core configuration."""

    max_attachment_size: int = Field(
        default=MAX_ATTACHMENT_SIZE, ge=_MIN_PAYLOAD_SIZE
    )
    max_plaintext_size: int = Field(
        default=MAX_PLAINTEXT_SIZE, ge=_MIN_PAYLOAD_SIZE
    )
    session_key_name: str = Field(default=SESSION_KEY, min_length=1)

    model_config = {"frozen": True}

    @field_validator("session_key_name")
    @classmethod
    def validate_session_key_name(cls, v: str) -> str:
        """Session entry names must be plain identifiers."""
        if v != v.strip() or ":" in v:
            raise ValueError(f"Invalid session key name: {v!r}")
        return v

    @model_validator(mode="after")
    def validate_attachment_fits(self) -> "CipherConfig":
        """A max-size attachment, once base64 encoded, must still be sealable."""
        encoded = 4 * ((self.max_attachment_size + 2) // 3)
        if encoded > self.max_plaintext_size:
            raise ValueError(
                f"max_plaintext_size ({self.max_plaintext_size}) cannot hold a "
                f"base64 encoded attachment of max_attachment_size "
                f"({self.max_attachment_size} -> {encoded} bytes)"
            )
        return self

    @classmethod
    def from_env(cls) -> "CipherConfig":
        """Create CipherConfig by loading values from environment.

        Returns:
            Populated CipherConfig instance.
        """
        config = cls(
            max_attachment_size=_env_int(
                "NOTECIPHER_MAX_ATTACHMENT_SIZE", MAX_ATTACHMENT_SIZE
            ),
            max_plaintext_size=_env_int(
                "NOTECIPHER_MAX_PLAINTEXT_SIZE", MAX_PLAINTEXT_SIZE
            ),
            session_key_name=os.environ.get(
                "NOTECIPHER_SESSION_KEY", SESSION_KEY
            ),
        )
        logger.debug(
            "Cipher config loaded: max_attachment_size=%d max_plaintext_size=%d",
            config.max_attachment_size, config.max_plaintext_size,
        )
        return config
