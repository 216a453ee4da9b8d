import logging
from uuid import uuid4

from wishsync.core.errors import LocalStorageFailure
from wishsync.core.prefs import LocalPreferences
from wishsync.schemas.wishlist import User


logger = logging.getLogger("wishsync.identity")

USER_ID_KEY = "user_id"
USER_NAME_KEY = "user_name"


class IdentityProvider:
    """Issues the device's opaque user id and keeps it in local preferences.

    The id is never verified by anyone: whoever edits the preferences file
    can claim any identity.
    """

    def __init__(self, prefs: LocalPreferences) -> None:
        self._prefs = prefs
        self._user_id: str | None = None

    def get_or_create_identity(self) -> str:
        if self._user_id is not None:
            return self._user_id
        user_id = self._prefs.get_string(USER_ID_KEY)
        if user_id is not None and not user_id.strip():
            raise LocalStorageFailure(f"stored {USER_ID_KEY!r} is blank")
        if user_id is None:
            user_id = str(uuid4())
            self._prefs.put_string(USER_ID_KEY, user_id)
            logger.info("Identity created user_id=%s", user_id)
        self._user_id = user_id
        return user_id

    def profile(self) -> User:
        user_id = self.get_or_create_identity()
        return User(id=user_id, name=self._prefs.get_string(USER_NAME_KEY) or "")

    def rename(self, name: str) -> User:
        user_id = self.get_or_create_identity()
        self._prefs.put_string(USER_NAME_KEY, name.strip())
        return User(id=user_id, name=name.strip())
