"""
auth/profiles.py -- Per-user display settings.

Settings are an arbitrary JSON object merged shallowly on every write. The
"photo" field is always dropped before persisting; photos are stored by a
separate service. The merge is a plain GET then SET, so two concurrent
writers for the same user can lose one another's fields.
"""

from __future__ import annotations

from typing import Any, Optional

from auth.store import AccountRepository

PHOTO_FIELD = "photo"


class ProfileManager:
    def __init__(self, repo: AccountRepository) -> None:
        self.repo = repo

    def get(self, user_id: str) -> dict[str, Any]:
        return self.repo.get_profile(user_id)

    def set(self, user_id: str, partial: Optional[dict[str, Any]]) -> dict[str, Any]:
        merged = {**self.repo.get_profile(user_id), **(partial or {})}
        merged.pop(PHOTO_FIELD, None)
        self.repo.save_profile(user_id, merged)
        return merged
