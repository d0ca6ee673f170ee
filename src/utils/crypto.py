from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken


def _derive_key(secret: str) -> bytes:
    raw = secret.encode("utf-8")
    try:
        if len(base64.urlsafe_b64decode(raw)) == 32:
            return raw
    except ValueError:
        pass
    return base64.urlsafe_b64encode(hashlib.sha256(raw).digest())


@dataclass
class TokenCipher:
    """Symmetric encryption for refresh tokens stored on tenant records.

    An empty secret disables encryption so local development can run against
    plaintext documents.
    """

    secret: str = ""

    def __post_init__(self) -> None:
        self._fernet: Optional[Fernet] = Fernet(_derive_key(self.secret)) if self.secret else None

    @property
    def enabled(self) -> bool:
        return self._fernet is not None

    def encrypt(self, value: str) -> str:
        if self._fernet is None:
            return value
        return self._fernet.encrypt(value.encode("utf-8")).decode("utf-8")

    def decrypt(self, value: str) -> Optional[str]:
        """Return the plaintext, or None when the payload cannot be decrypted."""
        if self._fernet is None:
            return value
        try:
            return self._fernet.decrypt(value.encode("utf-8")).decode("utf-8")
        except InvalidToken:
            return None
