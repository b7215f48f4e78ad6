from __future__ import annotations

import time
from typing import Any

# username -> entity_id -> saved item, in insertion order
_wishlists: dict[str, dict[str, dict[str, Any]]] = {}


def add_item(username: str, entity_id: str) -> bool:
    """Save ``entity_id`` for ``username``. Returns False if already saved."""
    items = _wishlists.setdefault(username, {})
    if entity_id in items:
        return False
    items[entity_id] = {"entity_id": entity_id, "added_at": time.time()}
    return True


def remove_item(username: str, entity_id: str) -> bool:
    items = _wishlists.get(username, {})
    return items.pop(entity_id, None) is not None


def contains(username: str, entity_id: str) -> bool:
    return entity_id in _wishlists.get(username, {})


def get_item_ids(username: str) -> list[str]:
    return list(_wishlists.get(username, {}))


def wishlist_sizes() -> dict[str, int]:
    return {user: len(items) for user, items in _wishlists.items() if items}


def clear_wishlists() -> None:
    _wishlists.clear()
