"""Credential codec for registry entries."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass

from cryptography.fernet import Fernet, InvalidToken

from app.errors import ExecutionFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Credentials:
    """Decrypted username/password pair. Never persisted or cached."""

    username: str | None = None
    password: str | None = None


class CredentialCodec:
    """Encrypts and decrypts ``{"username", "password"}`` credential references.

    With a Fernet key configured, references are Fernet tokens over the JSON
    document. Without one, references are the plain JSON document, which is only
    suitable for local development.
    """

    def __init__(self, key: str | None = None) -> None:
        self._fernet = Fernet(key.encode("utf-8")) if key else None
        if self._fernet is None:
            logger.warning("credentials.plaintext_mode reason=no_credential_key_configured")

    def encrypt(self, credentials: Credentials) -> str:
        document = json.dumps({"username": credentials.username, "password": credentials.password})
        if self._fernet is None:
            return document
        return self._fernet.encrypt(document.encode("utf-8")).decode("utf-8")

    def decrypt(self, credential_ref: str | None) -> Credentials:
        if not credential_ref:
            return Credentials()
        document = credential_ref
        if self._fernet is not None:
            try:
                document = self._fernet.decrypt(credential_ref.encode("utf-8")).decode("utf-8")
            except InvalidToken as exc:
                raise ExecutionFailure("Stored credentials could not be decrypted") from exc
        try:
            decoded = json.loads(document)
        except json.JSONDecodeError as exc:
            raise ExecutionFailure("Stored credentials are not a valid credential document") from exc
        if not isinstance(decoded, dict):
            raise ExecutionFailure("Stored credentials are not a valid credential document")
        return Credentials(username=decoded.get("username") or None, password=decoded.get("password"))
