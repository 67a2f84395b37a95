"""
Namma Kernel — Session

The signed-in user lives in its own blob with its own change signal
("auth-change"), independent of the document store. There is no password
check: signing in as an email makes you that user, with a uid derived
from the email so it's stable across sessions.
"""

from __future__ import annotations

import base64
import json
import logging
import time
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from namma.config import settings
from namma.kernel.bus import EventBus
from namma.kernel.storage import KeyValueStorage
from namma.kernel.types import AUTH_CHANGED, now_iso

logger = logging.getLogger(__name__)

AuthCallback = Callable[["User | None"], Any]


class UserMetadata(BaseModel):
    creation_time: str | None = Field(default=None, alias="creationTime")
    last_sign_in_time: str | None = Field(default=None, alias="lastSignInTime")

    model_config = {"populate_by_name": True}


class User(BaseModel):
    """The session user record."""

    model_config = {"populate_by_name": True}

    uid: str
    email: str = Field(min_length=3, pattern=r"^[^@\s]+@[^@\s]+$")
    email_verified: bool = Field(default=True, alias="emailVerified")
    is_anonymous: bool = Field(default=False, alias="isAnonymous")
    metadata: UserMetadata = Field(default_factory=UserMetadata)


def stable_uid(email: str) -> str:
    """user_<base64(email)>, the same uid every time for the same email."""
    return "user_" + base64.b64encode(email.encode("utf-8")).decode("ascii")


class SessionStore:
    """Owns the auth blob. Construct with `await SessionStore.open(...)`."""

    def __init__(self, storage: KeyValueStorage, bus: EventBus | None = None, *, key: str | None = None) -> None:
        self._storage = storage
        self.bus = bus or EventBus()
        self.key = key or settings.AUTH_KEY
        self._user: User | None = None

    @classmethod
    async def open(
        cls,
        storage: KeyValueStorage,
        bus: EventBus | None = None,
        *,
        key: str | None = None,
    ) -> SessionStore:
        session = cls(storage, bus, key=key)
        await session.load()
        return session

    async def load(self) -> None:
        """Read the user blob. Unreadable blobs mean nobody is signed in."""
        blob = await self._storage.get(self.key)
        self._user = None
        if blob is None:
            return
        try:
            self._user = User.model_validate(json.loads(blob))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning("SessionStore: discarding unreadable user blob %r: %s", self.key, e)

    @property
    def current_user(self) -> User | None:
        return self._user.model_copy(deep=True) if self._user is not None else None

    # -- auth operations --

    async def sign_up(self, email: str, password: str) -> User:
        """Create a fresh user (new uid every time) and sign in as them."""
        ts = now_iso()
        user = User(
            uid=f"user_{int(time.time() * 1000)}",
            email=email,
            metadata=UserMetadata(creation_time=ts, last_sign_in_time=ts),
        )
        await self._set_user(user)
        return user

    async def sign_in(self, email: str, password: str) -> User:
        user = User(
            uid=stable_uid(email),
            email=email,
            metadata=UserMetadata(last_sign_in_time=now_iso()),
        )
        await self._set_user(user)
        return user

    async def sign_out(self) -> None:
        await self._set_user(None)

    def on_auth_state_changed(self, callback: AuthCallback) -> Callable[[], None]:
        """Call back now with the current user, then on every change."""
        callback(self.current_user)
        return self.bus.on(AUTH_CHANGED, lambda _: callback(self.current_user))

    # -- internals --

    async def _set_user(self, user: User | None) -> None:
        if user is None:
            await self._storage.delete(self.key)
        else:
            await self._storage.set(self.key, user.model_dump_json(by_alias=True))
        self._user = user
        logger.info("SessionStore: %s", f"signed in as {user.uid}" if user else "signed out")
        self.bus.emit(AUTH_CHANGED, user.uid if user else None)
