from collections import defaultdict
from typing import Any, Dict, List

from rentalscout.db.ids import normalize_listing_id


class UserProfileStore:
    """Saved listings per user, kept in insertion order."""

    def __init__(self):
        self._saved: Dict[str, List[str]] = defaultdict(list)

    async def saved_listings(self, user_id: str) -> List[str]:
        return list(self._saved.get(user_id, []))

    async def save_listing(self, user_id: str, listing_id: Any) -> List[str]:
        key = normalize_listing_id(listing_id)
        if key not in self._saved[user_id]:
            self._saved[user_id].append(key)
        return list(self._saved[user_id])

    async def remove_listing(self, user_id: str, listing_id: Any) -> bool:
        key = normalize_listing_id(listing_id)
        saved = self._saved.get(user_id, [])
        if key in saved:
            saved.remove(key)
            return True
        return False
