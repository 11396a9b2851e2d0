"""
Short-lived cache of user profiles (identity, role, organization).

Every authenticated request needs the caller's role and organization; the
cache avoids one lookup per request. Entries expire after ``ttl_seconds`` and
are dropped explicitly whenever the user is updated or deleted, and expired
entries of other users are swept on every write.
"""
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple


@dataclass(frozen=True)
class UserProfile:
    id: int
    name: str
    email: str
    role: str
    organization_id: Optional[int]
    store_id: Optional[int]

    @classmethod
    def from_user(cls, user) -> "UserProfile":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            organization_id=user.organization_id,
            store_id=user.store_id,
        )


class ProfileCache:
    def __init__(self, ttl_seconds: float = 300, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[int, Tuple[UserProfile, float]] = {}
        self._lock = threading.Lock()

    def get(self, user_id: int) -> Optional[UserProfile]:
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                return None
            profile, stored_at = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[user_id]
                return None
            return profile

    def set(self, profile: UserProfile) -> None:
        with self._lock:
            now = self._clock()
            expired = [uid for uid, (_, stored_at) in self._entries.items() if now - stored_at >= self.ttl_seconds]
            for uid in expired:
                del self._entries[uid]
            self._entries[profile.id] = (profile, now)

    def get_or_load(self, user_id: int, loader: Callable[[int], Optional[UserProfile]]) -> Optional[UserProfile]:
        profile = self.get(user_id)
        if profile is not None:
            return profile
        profile = loader(user_id)
        if profile is not None:
            self.set(profile)
        return profile

    def invalidate(self, user_id: int) -> None:
        with self._lock:
            self._entries.pop(user_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
