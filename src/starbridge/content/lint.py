"""
Content linter for episodes and campaigns.

Pure functions: lint_episode(episode, known_modules) and
lint_campaign(campaign, episodes) return a list of LintIssue. Nothing is
modified. Errors are content the engine cannot play correctly; warnings
are content that plays but probably not as intended.

Errors:
- a choice whose nextScene is not a scene of the episode
- no "start" scene
- a module action or condition naming a module the episode does not
  require, or one that does not exist
- a campaign episode id that is not in the library
- a campaign with no order-1 entry

Warnings:
- scenes that cannot be reached from "start"
- campaign branches sharing previous episode and order whose conditions
  could both hold
"""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from dataclasses import dataclass
from enum import Enum
from itertools import combinations
from typing import TYPE_CHECKING, Iterable, Mapping

from ..engine.conditions import strict_equals
from ..state.schema import Campaign, CampaignEpisode, ConditionRange, Episode

if TYPE_CHECKING:
    from .library import ContentSource

logger = logging.getLogger(__name__)

START_SCENE = "start"


class LintLevel(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass
class LintIssue:
    level: LintLevel
    location: str
    message: str

    def __str__(self) -> str:
        return f"{self.level.value}: {self.location}: {self.message}"


def has_errors(issues: Iterable[LintIssue]) -> bool:
    return any(issue.level == LintLevel.ERROR for issue in issues)


# ─── Episodes ───────────────────────────────────────────────

def _reachable(episode: Episode) -> set[str]:
    seen: set[str] = set()
    queue = deque([START_SCENE])
    while queue:
        scene_id = queue.popleft()
        scene = episode.scenes.get(scene_id)
        if scene_id in seen or scene is None:
            continue
        seen.add(scene_id)
        queue.extend(choice.next_scene for choice in scene.choices)
    return seen


def lint_episode(episode: Episode, known_modules: Iterable[str] | None = None) -> list[LintIssue]:
    """Check an episode's scene graph and module references."""
    issues: list[LintIssue] = []
    known = set(known_modules) if known_modules is not None else None
    required = set(episode.required_modules or [])

    def error(location: str, message: str) -> None:
        issues.append(LintIssue(LintLevel.ERROR, location, message))

    def warning(location: str, message: str) -> None:
        issues.append(LintIssue(LintLevel.WARNING, location, message))

    def check_module(location: str, module_id: str) -> None:
        if known is not None and module_id not in known:
            error(location, f"unknown module '{module_id}'")
        elif module_id not in required:
            error(location, f"module '{module_id}' is not in requiredModules")

    if known is not None:
        for module_id in episode.required_modules or []:
            if module_id not in known:
                error("requiredModules", f"unknown module '{module_id}'")

    if START_SCENE not in episode.scenes:
        error("scenes", f"missing '{START_SCENE}' scene")

    for key, scene in episode.scenes.items():
        if scene.id != key:
            warning(f"scenes.{key}", f"scene id '{scene.id}' does not match its key")

        for i, choice in enumerate(scene.choices):
            where = f"scenes.{key}.choices[{i}]"
            if choice.next_scene not in episode.scenes:
                error(where, f"nextScene '{choice.next_scene}' does not exist")
            for action in choice.module_actions or []:
                check_module(f"{where}.moduleActions", action.module)
            if choice.condition is not None:
                for check in choice.condition.module_conditions or []:
                    check_module(f"{where}.condition.moduleConditions", check.module)

    if START_SCENE in episode.scenes:
        reachable = _reachable(episode)
        for key in episode.scenes:
            if key not in reachable:
                warning(f"scenes.{key}", "scene is unreachable from 'start'")

    return issues


# ─── Campaigns ──────────────────────────────────────────────

def _mutually_exclusive(a: CampaignEpisode, b: CampaignEpisode) -> bool:
    """True when some flag or fixed variable value rules out one branch given the other."""
    ca, cb = a.condition, b.condition
    if ca is None or cb is None:
        return False

    flags_a, flags_b = ca.flags or {}, cb.flags or {}
    if any(name in flags_b and flags_b[name] != value for name, value in flags_a.items()):
        return True

    vars_a, vars_b = ca.variables or {}, cb.variables or {}
    for name, value in vars_a.items():
        if name not in vars_b:
            continue
        other = vars_b[name]
        if isinstance(value, ConditionRange) or isinstance(other, ConditionRange):
            continue
        if not strict_equals(value, other):
            return True
    return False


def lint_campaign(
    campaign: Campaign,
    episodes: Mapping[str, Episode] | Iterable[Episode],
) -> list[LintIssue]:
    """Check a campaign's entry point, episode references and branching."""
    if not isinstance(episodes, Mapping):
        episodes = {episode.id: episode for episode in episodes}

    issues: list[LintIssue] = []
    in_campaign = {entry.episode_id for entry in campaign.episodes}

    entries = [e for e in campaign.episodes if e.order == 1]
    if not entries:
        issues.append(LintIssue(LintLevel.ERROR, "episodes", "no episode with order 1"))
    elif len(entries) > 1:
        issues.append(LintIssue(
            LintLevel.WARNING, "episodes",
            f"{len(entries)} episodes with order 1; '{entries[0].episode_id}' is used",
        ))

    siblings: dict[tuple[str, int], list[CampaignEpisode]] = defaultdict(list)
    for i, entry in enumerate(campaign.episodes):
        where = f"episodes[{i}]"
        if entry.episode_id not in episodes:
            issues.append(LintIssue(LintLevel.ERROR, where, f"episode '{entry.episode_id}' is not installed"))

        condition = entry.condition
        if condition is None or condition.previous_episode_id is None:
            if entry.order != 1:
                issues.append(LintIssue(
                    LintLevel.WARNING, where,
                    f"'{entry.episode_id}' has no previousEpisodeId and can never be reached",
                ))
            continue

        if condition.previous_episode_id not in in_campaign:
            issues.append(LintIssue(
                LintLevel.ERROR, f"{where}.condition",
                f"previousEpisodeId '{condition.previous_episode_id}' is not part of this campaign",
            ))
        siblings[(condition.previous_episode_id, entry.order)].append(entry)

    for (previous, order), group in siblings.items():
        for a, b in combinations(group, 2):
            if not _mutually_exclusive(a, b):
                issues.append(LintIssue(
                    LintLevel.WARNING, "episodes",
                    f"'{a.episode_id}' and '{b.episode_id}' both follow '{previous}' at order {order} "
                    f"and their conditions can both hold; '{a.episode_id}' wins",
                ))

    return issues


# ─── Library ────────────────────────────────────────────────

def lint_library(
    library: "ContentSource",
    known_modules: Iterable[str] | None = None,
    ids: Iterable[str] | None = None,
) -> dict[str, list[LintIssue]]:
    """Lint every episode and campaign (or just ``ids``), keyed by content id."""
    wanted = set(ids) if ids else None
    known = list(known_modules) if known_modules is not None else None
    episodes = {episode.id: episode for episode in library.list_episodes()}

    report: dict[str, list[LintIssue]] = {}
    for episode in episodes.values():
        if wanted is None or episode.id in wanted:
            report[episode.id] = lint_episode(episode, known)
    for campaign in library.list_campaigns():
        if wanted is None or campaign.id in wanted:
            report[campaign.id] = lint_campaign(campaign, episodes)

    for content_id in sorted((wanted or set()) - set(report)):
        logger.debug("Nothing to lint for %s", content_id)
    return report
