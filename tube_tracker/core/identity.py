"""
Identity provider for tube-tracker.

Holds the signed-in user (if any) and notifies listeners on every change.
The sync layer never stores a user itself: each operation takes the user
as an argument, and the shell reads it from here.

Usage:
    identity = IdentityProvider()
    unsubscribe = identity.subscribe(lambda user: print("now", user))
    identity.sign_in(User(id="u1", email="a@example.com"))
    unsubscribe()
"""

from dataclasses import dataclass
from typing import Callable

from tube_tracker.core.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class User:
    """
    An authenticated user.

    Attributes:
        id: Stable user id (remote store primary key).
        email: Display email, may be empty.
    """

    id: str
    email: str = ""


AuthListener = Callable[[User | None], None]


class IdentityProvider:
    """Current-user holder with change subscriptions."""

    def __init__(self, user: User | None = None) -> None:
        self._user = user
        self._listeners: list[AuthListener] = []

    def current_user(self) -> User | None:
        return self._user

    def sign_in(self, user: User) -> None:
        self._set_user(user)

    def sign_out(self) -> None:
        self._set_user(None)

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        """
        Register a listener called with the new user on every change.

        Returns:
            A callable that removes the listener. Calling it twice is a no-op.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_user(self, user: User | None) -> None:
        self._user = user
        logger.debug(f"Identity changed: {user.id if user else 'signed out'}")
        for listener in list(self._listeners):
            listener(user)
