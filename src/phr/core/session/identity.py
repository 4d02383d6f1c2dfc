"""Active-user identity: who the record channels act on behalf of."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

# Called with (previous_user_id, current_user_id) after every change.
IdentityListener = Callable[[str | None, str | None], Awaitable[None]]


@runtime_checkable
class IdentityProvider(Protocol):
    """Exposes the current user id and change notifications."""

    @property
    def user_id(self) -> str | None:
        """The signed-in user's id, or None when nobody is signed in."""
        ...

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unregisters it."""
        ...


class SessionIdentity:
    """In-process identity holder for one session.

    The authentication flow itself lives outside this package; whatever
    completes a login calls :meth:`sign_in` with the resulting user id.
    """

    def __init__(self, user_id: str | None = None) -> None:
        self._user_id = user_id or None
        self._listeners: list[IdentityListener] = []

    @property
    def user_id(self) -> str | None:
        return self._user_id

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def sign_in(self, user_id: str) -> None:
        if not user_id:
            raise ValueError("user_id must not be empty")
        await self._set(user_id)

    async def sign_out(self) -> None:
        await self._set(None)

    async def _set(self, user_id: str | None) -> None:
        previous = self._user_id
        if previous == user_id:
            return
        self._user_id = user_id
        logger.info("Session identity changed (signed_in=%s)", user_id is not None)
        for listener in list(self._listeners):
            await listener(previous, user_id)
