"""
Shape checks on raw episode and campaign JSON.

These are the gate a file must pass before the library accepts it. They
look only at the fields the engine cannot do without; the pydantic
models do the full parse afterwards.
"""

from typing import Any

EPISODE_TEXT_FIELDS = ("id", "title", "author", "description", "stardate", "shipName")
CAMPAIGN_TEXT_FIELDS = ("id", "title", "author", "description")


def _has_text(obj: dict, fields: tuple[str, ...]) -> bool:
    return all(isinstance(obj.get(name), str) and obj[name] for name in fields)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_valid_episode(obj: Any) -> bool:
    """Non-empty id/title/author/description/stardate/shipName and at least one scene."""
    if not isinstance(obj, dict) or not _has_text(obj, EPISODE_TEXT_FIELDS):
        return False
    scenes = obj.get("scenes")
    return isinstance(scenes, dict) and len(scenes) > 0


def is_valid_campaign(obj: Any) -> bool:
    """Non-empty id/title/author/description and a non-empty episode list."""
    if not isinstance(obj, dict) or not _has_text(obj, CAMPAIGN_TEXT_FIELDS):
        return False
    episodes = obj.get("episodes")
    if not isinstance(episodes, list) or not episodes:
        return False
    return all(
        isinstance(entry, dict)
        and isinstance(entry.get("episodeId"), str)
        and isinstance(entry.get("title"), str)
        and _is_number(entry.get("order"))
        for entry in episodes
    )
