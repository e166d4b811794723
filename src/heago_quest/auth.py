from __future__ import annotations

"""Session provider gating the tracker surfaces; it has no say in game rules."""

from typing import Protocol

from .paths import local_user


class SessionProvider(Protocol):
    @property
    def current_user(self) -> str | None: ...

    def sign_out(self) -> None: ...


class LocalSessionProvider:
    """Single local user taken from `HEAGO_USER` or the OS login name."""

    def __init__(self, user: str | None = None) -> None:
        self._user = user if user is not None else local_user()

    @property
    def current_user(self) -> str | None:
        return self._user

    def sign_in(self, user: str) -> None:
        cleaned = user.strip()
        if not cleaned:
            raise ValueError("user must not be empty.")
        self._user = cleaned

    def sign_out(self) -> None:
        self._user = None
