"""Bearer token persistence for the client."""

from __future__ import annotations

from kakeibo.client.storage import AbstractStorage

DEFAULT_TOKEN_KEY = "authToken"


class TokenStore:
    """Keeps the session token in durable storage."""

    def __init__(self, storage: AbstractStorage, *, key: str = DEFAULT_TOKEN_KEY) -> None:
        self._storage = storage
        self._key = key

    def get_token(self) -> str | None:
        return self._storage.get_item(self._key) or None

    def set_token(self, token: str) -> None:
        self._storage.set_item(self._key, token)

    def remove_token(self) -> None:
        self._storage.remove_item(self._key)

    def is_authenticated(self) -> bool:
        return self.get_token() is not None
