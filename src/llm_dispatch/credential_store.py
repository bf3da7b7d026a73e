from __future__ import annotations

import json
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken

from .errors import ConfigurationError


class EncryptedCredentialStore:
    """
    Encrypted-at-rest storage for the single static API credential.

    The file at `path` holds one Fernet token wrapping `{"api_key": "..."}`.
    """

    def __init__(self, path: str, fernet_key: str):
        self.path = Path(path)
        try:
            self._fernet = Fernet(fernet_key.encode("utf-8"))
        except (ValueError, TypeError) as e:
            raise ConfigurationError("Invalid credential encryption key.") from e

    def exists(self) -> bool:
        return self.path.exists()

    def save_api_key(self, api_key: str) -> None:
        if not api_key:
            raise ConfigurationError("Refusing to store an empty API key.")
        raw = json.dumps({"api_key": api_key}).encode("utf-8")
        self.path.write_bytes(self._fernet.encrypt(raw))

    def load_api_key(self) -> str:
        try:
            raw = self._fernet.decrypt(self.path.read_bytes())
        except InvalidToken as e:
            raise ConfigurationError("Failed to decrypt stored credential (wrong key or corrupted file).") from e
        try:
            payload = json.loads(raw.decode("utf-8"))
        except json.JSONDecodeError as e:
            raise ConfigurationError("Stored credential is not valid JSON.") from e
        api_key = payload.get("api_key") if isinstance(payload, dict) else None
        if not isinstance(api_key, str) or not api_key:
            raise ConfigurationError("Stored credential has no api_key.")
        return api_key
