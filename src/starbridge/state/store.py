"""
Progress storage abstraction.

Separates persistence from the engine for testability. Two record kinds
are kept: per-episode saves (keyed by episode id) and per-campaign
progress (keyed by campaign id).
"""

import json
import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import ValidationError

from .schema import CampaignProgress, GameState, SavedState, now_ms

logger = logging.getLogger(__name__)


@runtime_checkable
class ProgressStore(Protocol):
    """
    Storage interface for saved games and campaign progress.

    Implementations:
    - JsonProgressStore: File-based persistence (production)
    - MemoryProgressStore: In-memory storage (testing)
    """

    def save_game_state(self, episode_id: str, scene_id: str, game_state: GameState) -> None:
        """Upsert the save for an episode."""
        ...

    def get_saved_state(self, episode_id: str) -> SavedState | None:
        """Load an episode save. Returns None if not found."""
        ...

    def delete_saved_state(self, episode_id: str) -> bool:
        """Delete an episode save. Returns True if deleted."""
        ...

    def save_campaign_progress(
        self,
        campaign_id: str,
        current_episode_id: str | None,
        completed_episodes: list[str],
        game_state: GameState,
    ) -> None:
        """Upsert progress for a campaign."""
        ...

    def get_campaign_progress(self, campaign_id: str) -> CampaignProgress | None:
        """Load campaign progress. Returns None if not found."""
        ...

    def delete_campaign_progress(self, campaign_id: str) -> bool:
        """Delete campaign progress. Returns True if deleted."""
        ...


class JsonProgressStore:
    """
    File-based progress storage using JSON.

    Layout:
        <data_dir>/saves/<episode_id>.json
        <data_dir>/progress/<campaign_id>.json

    The previous version of a file is kept as .json.bak on every write.
    """

    def __init__(self, data_dir: Path | str = "starbridge_data"):
        self.data_dir = Path(data_dir)
        self.saves_dir = self.data_dir / "saves"
        self.progress_dir = self.data_dir / "progress"
        self.saves_dir.mkdir(parents=True, exist_ok=True)
        self.progress_dir.mkdir(parents=True, exist_ok=True)

    # ─── Helpers ─────────────────────────────────────────────

    @staticmethod
    def _write(path: Path, payload: str) -> None:
        if path.exists():
            backup = path.with_suffix(".json.bak")
            backup.write_text(path.read_text(encoding="utf-8"), encoding="utf-8")
        path.write_text(payload, encoding="utf-8")

    @staticmethod
    def _read(path: Path, model):
        if not path.exists():
            return None
        try:
            return model.model_validate(json.loads(path.read_text(encoding="utf-8")))
        except (json.JSONDecodeError, ValidationError, OSError) as e:
            logger.warning("Ignoring unreadable save file %s: %s", path, e)
            return None

    @staticmethod
    def _delete(path: Path) -> bool:
        if path.exists():
            path.unlink()
            return True
        return False

    # ─── Episode saves ───────────────────────────────────────

    def save_game_state(self, episode_id: str, scene_id: str, game_state: GameState) -> None:
        record = SavedState(episode_id=episode_id, scene_id=scene_id, game_state=game_state)
        self._write(
            self.saves_dir / f"{episode_id}.json",
            record.model_dump_json(indent=2, by_alias=True),
        )

    def get_saved_state(self, episode_id: str) -> SavedState | None:
        return self._read(self.saves_dir / f"{episode_id}.json", SavedState)

    def delete_saved_state(self, episode_id: str) -> bool:
        return self._delete(self.saves_dir / f"{episode_id}.json")

    def list_saved_states(self) -> list[SavedState]:
        """All readable saves, most recent first."""
        saves = []
        for f in self.saves_dir.glob("*.json"):
            record = self._read(f, SavedState)
            if record is not None:
                saves.append(record)
        saves.sort(key=lambda s: s.timestamp, reverse=True)
        return saves

    # ─── Campaign progress ───────────────────────────────────

    def save_campaign_progress(
        self,
        campaign_id: str,
        current_episode_id: str | None,
        completed_episodes: list[str],
        game_state: GameState,
    ) -> None:
        record = CampaignProgress(
            campaign_id=campaign_id,
            current_episode_id=current_episode_id,
            completed_episodes=list(completed_episodes or []),
            game_state=game_state,
            timestamp=now_ms(),
        )
        # currentEpisodeId is written even when null
        self._write(
            self.progress_dir / f"{campaign_id}.json",
            record.model_dump_json(indent=2, by_alias=True),
        )

    def get_campaign_progress(self, campaign_id: str) -> CampaignProgress | None:
        return self._read(self.progress_dir / f"{campaign_id}.json", CampaignProgress)

    def delete_campaign_progress(self, campaign_id: str) -> bool:
        return self._delete(self.progress_dir / f"{campaign_id}.json")


class MemoryProgressStore:
    """
    In-memory progress storage for testing.

    Records are copied on the way in and out so callers cannot
    mutate what is stored.
    """

    def __init__(self):
        self.saves: dict[str, SavedState] = {}
        self.progress: dict[str, CampaignProgress] = {}

    def save_game_state(self, episode_id: str, scene_id: str, game_state: GameState) -> None:
        self.saves[episode_id] = SavedState(
            episode_id=episode_id,
            scene_id=scene_id,
            game_state=game_state.model_copy(deep=True),
        )

    def get_saved_state(self, episode_id: str) -> SavedState | None:
        record = self.saves.get(episode_id)
        return record.model_copy(deep=True) if record else None

    def delete_saved_state(self, episode_id: str) -> bool:
        return self.saves.pop(episode_id, None) is not None

    def save_campaign_progress(
        self,
        campaign_id: str,
        current_episode_id: str | None,
        completed_episodes: list[str],
        game_state: GameState,
    ) -> None:
        self.progress[campaign_id] = CampaignProgress(
            campaign_id=campaign_id,
            current_episode_id=current_episode_id,
            completed_episodes=list(completed_episodes or []),
            game_state=game_state.model_copy(deep=True),
        )

    def get_campaign_progress(self, campaign_id: str) -> CampaignProgress | None:
        record = self.progress.get(campaign_id)
        return record.model_copy(deep=True) if record else None

    def delete_campaign_progress(self, campaign_id: str) -> bool:
        return self.progress.pop(campaign_id, None) is not None

    def clear(self) -> None:
        """Clear all records (test utility)."""
        self.saves.clear()
        self.progress.clear()
