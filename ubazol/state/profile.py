"""
Profile side-data: user record, favorite vendors, loyalty points, badges
and app preferences.

Each field lives under its own storage key. clear() ends the session by
dropping everything except preferences.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional
import copy

from ubazol.logging import get_logger, LogStream
from ubazol.storage.keys import StorageKeys


DEFAULT_PREFERENCES: Dict[str, Any] = {
    "notifications": True,
    "locationSharing": True,
    "language": "en",
    "theme": "light",
}


class ProfileStore:
    """User profile fields persisted through the write-behind persister."""

    def __init__(self, persister):
        self.persister = persister
        self.logger = get_logger(LogStream.PROFILE)

        self._user: Optional[Dict] = None
        self._favorites: List[Dict] = []
        self._loyalty_points = 0
        self._badges: List[Any] = []
        self._preferences: Dict[str, Any] = dict(DEFAULT_PREFERENCES)
        self._mutated = False

    def load(self) -> bool:
        if self._mutated:
            return False

        store = self.persister.store
        try:
            user = store.get(StorageKeys.USER)
            favorites = store.get(StorageKeys.FAVORITES)
            points = store.get(StorageKeys.LOYALTY_POINTS)
            badges = store.get(StorageKeys.BADGES)
            preferences = store.get(StorageKeys.PREFERENCES)

            loaded_points = int(points) if points is not None else 0
        except Exception as e:
            self.logger.error(
                "Error loading user data",
                extra={"error": str(e)},
                exc_info=True
            )
            return False

        self._user = user
        self._favorites = list(favorites or [])
        self._loyalty_points = loaded_points
        self._badges = list(badges or [])
        self._preferences = {**DEFAULT_PREFERENCES, **(preferences or {})}
        return True

    # ========================================================================
    # ACCESSORS
    # ========================================================================

    @property
    def user(self) -> Optional[Dict]:
        return copy.deepcopy(self._user)

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    @property
    def favorites(self) -> List[Dict]:
        return copy.deepcopy(self._favorites)

    @property
    def loyalty_points(self) -> int:
        return self._loyalty_points

    @property
    def badges(self) -> List[Any]:
        return copy.deepcopy(self._badges)

    @property
    def preferences(self) -> Dict[str, Any]:
        return dict(self._preferences)

    # ========================================================================
    # MUTATIONS
    # ========================================================================

    def set_user(self, user: Mapping) -> Dict:
        self._user = copy.deepcopy(dict(user))
        self._save(StorageKeys.USER, self._user)
        self.logger.info("User set", extra={"user_id": self._user.get("id")})
        return self.user

    def update_profile(self, **fields) -> Dict:
        """Merge fields into the user record."""
        if self._user is None:
            raise ValueError("No user to update")
        self._user = {**self._user, **copy.deepcopy(fields)}
        self._save(StorageKeys.USER, self._user)
        return self.user

    def add_favorite(self, item: Mapping) -> bool:
        """Returns False when item is already a favorite."""
        if "id" not in item:
            raise ValueError("Favorite needs an id")
        if self.is_favorite(item["id"]):
            return False
        self._favorites = self._favorites + [copy.deepcopy(dict(item))]
        self._save(StorageKeys.FAVORITES, self._favorites)
        return True

    def remove_favorite(self, item_id) -> bool:
        remaining = [f for f in self._favorites if f.get("id") != item_id]
        if len(remaining) == len(self._favorites):
            return False
        self._favorites = remaining
        self._save(StorageKeys.FAVORITES, self._favorites)
        return True

    def is_favorite(self, item_id) -> bool:
        return any(f.get("id") == item_id for f in self._favorites)

    def update_loyalty_points(self, points: int) -> int:
        if isinstance(points, bool) or not isinstance(points, int) or points < 0:
            raise ValueError(f"Loyalty points must be a non-negative integer, got {points!r}")
        self._loyalty_points = points
        self._save(StorageKeys.LOYALTY_POINTS, points)
        return points

    def add_badge(self, badge: Any) -> None:
        self._badges = self._badges + [copy.deepcopy(badge)]
        self._save(StorageKeys.BADGES, self._badges)

    def update_preferences(self, **prefs) -> Dict[str, Any]:
        self._preferences = {**self._preferences, **prefs}
        self._save(StorageKeys.PREFERENCES, self._preferences)
        return self.preferences

    def clear(self) -> None:
        """Drop user, favorites, points and badges. Preferences survive."""
        self._user = None
        self._favorites = []
        self._loyalty_points = 0
        self._badges = []
        self._mutated = True

        for key in StorageKeys.PROFILE_SESSION:
            self.persister.submit_remove(key)

        self.logger.info("Profile cleared")

    def _save(self, key: str, value: Any) -> None:
        self._mutated = True
        self.persister.submit(key, value)
