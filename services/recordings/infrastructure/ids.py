from __future__ import annotations

import secrets
import string
import uuid

SHARE_TOKEN_ALPHABET = string.ascii_letters + string.digits


class ShareTokenProvider:
    def __init__(self, length: int = 12) -> None:
        self._length = length

    def generate(self) -> str:
        return "".join(
            secrets.choice(SHARE_TOKEN_ALPHABET) for _ in range(self._length)
        )


class UuidIdProvider:
    def generate(self) -> str:
        return str(uuid.uuid4())
