"""
Episode and campaign library.

Content comes from three places, merged by id with later sources
replacing earlier ones:

1. Built-in JSON shipped inside the package (starbridge/data)
2. An optional content directory (<content_dir>/episodes, /campaigns)
3. The user import directory, where ``import_*`` writes

Files that fail to parse or validate are skipped with a warning. Built-in
content cannot be deleted.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from importlib.resources import files
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol, TypeVar, runtime_checkable

from pydantic import ValidationError

from ..errors import CampaignNotFoundError, EpisodeNotFoundError
from ..state.schema import Campaign, Episode, WireModel
from ..state.store import ProgressStore
from .validation import is_valid_campaign, is_valid_episode

logger = logging.getLogger(__name__)

BUILTIN = "builtin"
CONTENT = "content"
USER = "user"

ModelT = TypeVar("ModelT", bound=WireModel)


@runtime_checkable
class ContentSource(Protocol):
    """Read side of the library, as the engine consumes it."""

    def list_episodes(self) -> list[Episode]:
        ...

    def list_campaigns(self) -> list[Campaign]:
        ...

    def get_episode(self, episode_id: str) -> Episode | None:
        ...

    def get_campaign(self, campaign_id: str) -> Campaign | None:
        ...


@dataclass
class ImportResult:
    """Outcome of importing a batch of files."""
    success: bool = False
    added: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class _Shelf:
    """One kind of content (episodes or campaigns) with where each id came from."""
    kind: str
    model: type
    check: Callable[[Any], bool]
    items: dict[str, Any] = field(default_factory=dict)
    sources: dict[str, str] = field(default_factory=dict)

    def parse(self, data: Any, name: str) -> Any:
        """Validate raw JSON; raises ValueError with a readable reason."""
        if not self.check(data):
            raise ValueError(f"{name} is not a valid {self.kind} file")
        try:
            return self.model.model_validate(data)
        except ValidationError as e:
            raise ValueError(f"{name} is not a valid {self.kind} file: {e.error_count()} schema error(s)") from e

    def put(self, item: Any, source: str) -> None:
        if item.id in self.items and self.sources[item.id] != source:
            logger.debug("%s %s from %s replaces %s", self.kind, item.id, source, self.sources[item.id])
        self.items[item.id] = item
        self.sources[item.id] = source


def _read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def to_json(model: WireModel) -> str:
    """Pretty JSON with wire field names, the interchange format."""
    return json.dumps(model.to_wire(), indent=2, ensure_ascii=False) + "\n"


class ContentLibrary:
    """
    Merged view of built-in, installed and user-imported content.

    Usage:
        library = ContentLibrary(content_dir="content", user_dir="starbridge_data/library")
        for episode in library.list_episodes():
            print(episode.title)
        result = library.import_episodes(["my-episode.json"])
    """

    def __init__(
        self,
        content_dir: Path | str | None = None,
        user_dir: Path | str | None = None,
        store: ProgressStore | None = None,
    ):
        self.content_dir = Path(content_dir) if content_dir else None
        self.user_dir = Path(user_dir) if user_dir else None
        self.store = store
        self._episodes = _Shelf("episode", Episode, is_valid_episode)
        self._campaigns = _Shelf("campaign", Campaign, is_valid_campaign)
        self.reload()

    # ─── Loading ─────────────────────────────────────────────

    def reload(self) -> None:
        """Rebuild the merged view from all three sources."""
        for shelf in (self._episodes, self._campaigns):
            shelf.items.clear()
            shelf.sources.clear()

        data = files("starbridge") / "data"
        for shelf, folder in ((self._episodes, "episodes"), (self._campaigns, "campaigns")):
            builtin_dir = data / folder
            if builtin_dir.is_dir():
                for entry in sorted(builtin_dir.iterdir(), key=lambda e: e.name):
                    if entry.name.endswith(".json"):
                        self._load_into(shelf, entry.name, lambda e=entry: json.loads(e.read_text(encoding="utf-8")), BUILTIN)

            for root, source in ((self.content_dir, CONTENT), (self.user_dir, USER)):
                if root is None or not (root / folder).is_dir():
                    continue
                for path in sorted((root / folder).glob("*.json")):
                    self._load_into(shelf, path.name, lambda p=path: _read_json(p), source)

        logger.debug(
            "Library loaded: %d episodes, %d campaigns",
            len(self._episodes.items), len(self._campaigns.items),
        )

    @staticmethod
    def _load_into(shelf: _Shelf, name: str, read: Callable[[], Any], source: str) -> None:
        try:
            item = shelf.parse(read(), name)
        except (OSError, json.JSONDecodeError, ValueError) as e:
            logger.warning("Skipping %s file %s: %s", shelf.kind, name, e)
            return
        shelf.put(item, source)

    # ─── Queries ─────────────────────────────────────────────

    def list_episodes(self) -> list[Episode]:
        return list(self._episodes.items.values())

    def list_campaigns(self) -> list[Campaign]:
        return list(self._campaigns.items.values())

    def get_episode(self, episode_id: str) -> Episode | None:
        return self._episodes.items.get(episode_id)

    def get_campaign(self, campaign_id: str) -> Campaign | None:
        return self._campaigns.items.get(campaign_id)

    def source_of(self, content_id: str) -> str | None:
        """Where an episode or campaign id was loaded from."""
        return self._episodes.sources.get(content_id) or self._campaigns.sources.get(content_id)

    def is_builtin(self, content_id: str) -> bool:
        return self.source_of(content_id) == BUILTIN

    # ─── Import ──────────────────────────────────────────────

    def import_episodes(self, paths: Iterable[Path | str]) -> ImportResult:
        return self._import(self._episodes, "episodes", paths)

    def import_campaigns(self, paths: Iterable[Path | str]) -> ImportResult:
        return self._import(self._campaigns, "campaigns", paths)

    def _import(self, shelf: _Shelf, folder: str, paths: Iterable[Path | str]) -> ImportResult:
        result = ImportResult()
        accepted = []

        for raw in paths:
            path = Path(raw)
            try:
                accepted.append(shelf.parse(_read_json(path), path.name))
            except (OSError, json.JSONDecodeError) as e:
                result.errors.append(f"Error reading {path.name}: {e}")
            except ValueError as e:
                result.errors.append(str(e))

        for item in accepted:
            if self.user_dir is not None:
                target = self.user_dir / folder
                target.mkdir(parents=True, exist_ok=True)
                (target / f"{item.id}.json").write_text(to_json(item), encoding="utf-8")
            shelf.put(item, USER)
            logger.info("Imported %s %s", shelf.kind, item.id)

        result.added = len(accepted)
        result.success = result.added > 0
        return result

    # ─── Delete ──────────────────────────────────────────────

    def delete_episode(self, episode_id: str) -> bool:
        """Delete a user episode and its save. Built-in content is protected."""
        if not self._delete(self._episodes, "episodes", episode_id):
            return False
        if self.store is not None:
            self.store.delete_saved_state(episode_id)
        return True

    def delete_campaign(self, campaign_id: str) -> bool:
        """Delete a user campaign and its progress. Built-in content is protected."""
        if not self._delete(self._campaigns, "campaigns", campaign_id):
            return False
        if self.store is not None:
            self.store.delete_campaign_progress(campaign_id)
        return True

    def _delete(self, shelf: _Shelf, folder: str, content_id: str) -> bool:
        source = shelf.sources.get(content_id)
        if source is None:
            return False
        if source != USER:
            logger.warning("Cannot delete %s %s %s", source, shelf.kind, content_id)
            return False

        del shelf.items[content_id]
        del shelf.sources[content_id]
        if self.user_dir is not None:
            path = self.user_dir / folder / f"{content_id}.json"
            if path.exists():
                path.unlink()
            # Whatever the user copy was shadowing comes back
            self.reload()
        return True

    # ─── Export ──────────────────────────────────────────────

    def export_episode(self, episode_id: str, path: Path | str | None = None) -> str:
        episode = self.get_episode(episode_id)
        if episode is None:
            raise EpisodeNotFoundError(episode_id)
        return self._export(episode, path)

    def export_campaign(self, campaign_id: str, path: Path | str | None = None) -> str:
        campaign = self.get_campaign(campaign_id)
        if campaign is None:
            raise CampaignNotFoundError(f"Campaign '{campaign_id}' not found")
        return self._export(campaign, path)

    @staticmethod
    def _export(model: WireModel, path: Path | str | None) -> str:
        text = to_json(model)
        if path is not None:
            Path(path).write_text(text, encoding="utf-8")
        return text
