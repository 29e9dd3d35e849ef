"""
Display and rendering helpers for the starbridge CLI.

Handles theming, scene text, choice lists, alerts and the module panel.
Renderers only read plain dicts and models; they never touch game state.
"""

from typing import Any, Iterable

from prompt_toolkit.styles import Style as PTStyle
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..content.lint import LintIssue, LintLevel
from ..state.event_bus import EngineEvent, EventType
from ..state.schema import Alert, AlertType, Campaign, Choice, Episode, Scene

# Shared console instance
console = Console()

# -----------------------------------------------------------------------------
# Theme: bridge console
# -----------------------------------------------------------------------------

THEME = {
    "primary": "orange1",           # console frame
    "secondary": "light_steel_blue",  # headings
    "accent": "medium_purple1",     # choice numbers
    "success": "green3",
    "warning": "gold1",
    "danger": "red3",
    "info": "deep_sky_blue1",
    "dim": "dim",
    "text": "grey85",
}

# Prompt toolkit style to match theme
pt_style = PTStyle.from_dict({
    "prompt": "#ff9f1c bold",
    "completion-menu.completion": "bg:#3b2a52 #d7d7ff",
    "completion-menu.completion.current": "bg:#ff9f1c #000000 bold",
})

ALERT_STYLES = {
    AlertType.INFO: (THEME["info"], "INFO"),
    AlertType.SUCCESS: (THEME["success"], "SUCCESS"),
    AlertType.WARNING: (THEME["warning"], "WARNING"),
    AlertType.DANGER: (THEME["danger"], "DANGER"),
}

SHIP_ALERT_COLORS = {
    "none": THEME["dim"],
    "yellow": THEME["warning"],
    "red": THEME["danger"],
    "blue": THEME["info"],
}


# -----------------------------------------------------------------------------
# Scenes and choices
# -----------------------------------------------------------------------------

def render_scene(scene: Scene, episode: Episode | None = None) -> None:
    """Scene title and paragraphs in a framed panel."""
    body = "\n\n".join(scene.text) if scene.text else "[dim](no text)[/dim]"
    subtitle = f"[{THEME['dim']}]{episode.title} | Stardate {episode.stardate}[/{THEME['dim']}]" if episode else None
    console.print(Panel(
        body,
        title=f"[bold {THEME['secondary']}]{scene.title or scene.id}[/bold {THEME['secondary']}]",
        subtitle=subtitle,
        border_style=THEME["primary"],
        padding=(1, 2),
    ))


def render_choices(choices: list[Choice]) -> None:
    """Numbered list of the choices on offer, starting at 1."""
    if not choices:
        return
    lines = "\n".join(
        f"[{THEME['accent']}]{i}.[/{THEME['accent']}] {choice.text}"
        for i, choice in enumerate(choices, 1)
    )
    console.print(Panel(lines, border_style=THEME["accent"], padding=(0, 1)))


def render_alert(alert: Alert | None) -> None:
    if alert is None:
        return
    color, label = ALERT_STYLES.get(alert.type, (THEME["info"], "INFO"))
    console.print(f"[bold {color}]{label}[/bold {color}] {alert.message}")


def render_alerts(alerts: Iterable[Alert]) -> None:
    for alert in alerts:
        render_alert(alert)


def render_engine_event(event: EngineEvent) -> None:
    """Engine trouble the player should hear about: failed saves and cut-short effect chains."""
    data = event.data
    if event.type == EventType.PERSISTENCE_FAILED:
        error = escape(str(data.get("error", "unknown error")))
        console.print(f"[{THEME['warning']}]Could not save {data.get('what', 'progress')}:[/{THEME['warning']}] {error}")
    elif event.type == EventType.PROPAGATION_ABORTED:
        console.print(
            f"[{THEME['dim']}]Chain reaction from {data.get('module')}.{data.get('action')} stopped: "
            f"{escape(str(data.get('reason')))}[/{THEME['dim']}]"
        )


def render_ending(scene: Scene) -> None:
    console.print(f"\n[bold {THEME['secondary']}]End of episode:[/bold {THEME['secondary']}] {scene.title or scene.id}\n")


# -----------------------------------------------------------------------------
# Module panel
# -----------------------------------------------------------------------------

def _ship_summary(state: dict[str, Any]) -> str:
    alert = state.get("alerts", {}).get("current", "none")
    color = SHIP_ALERT_COLORS.get(alert, THEME["text"])
    systems = state.get("systems", {})
    shields = systems.get("shields", {})
    warp = systems.get("warpDrive", {})
    power = state.get("power", {})
    hull = state.get("damage", {}).get("hull", 0)
    return (
        f"{state.get('name', '?')} | alert [{color}]{alert}[/{color}] | "
        f"shields {shields.get('strength', 0):.0f}% ({shields.get('status', '?')}) | "
        f"warp {warp.get('currentWarp', 0):g} | power free {power.get('available', 0):.0f} | hull {hull:.0f}%"
    )


def _crew_summary(state: dict[str, Any]) -> str:
    members = list(state.get("officers", [])) + list(state.get("crew", []))
    injured = sum(1 for m in members if m.get("status") in ("injured", "critical"))
    away = state.get("awayTeam", [])
    text = f"{len(members)} officers, {injured} injured"
    if away:
        text += f" | away team: {', '.join(away)}"
    emergencies = state.get("emergencies", [])
    if emergencies:
        text += f" | [{THEME['danger']}]{len(emergencies)} emergency[/{THEME['danger']}]"
    return text


def _inventory_summary(state: dict[str, Any]) -> str:
    return (
        f"{state.get('totalItems', 0)}/{state.get('capacity', 0)} items | "
        f"{state.get('totalWeight', 0):.1f} kg"
    )


def _mission_summary(state: dict[str, Any]) -> str:
    mission = state.get("currentMission")
    if not mission:
        return "no active mission"
    objectives = [
        ("done" if o.get("completed") else "open") + "  " + o.get("description", o.get("id", ""))
        for o in mission.get("objectives", []) if not o.get("hidden")
    ]
    head = f"{mission.get('title', mission.get('id'))} ({mission.get('status')}, {mission.get('progress', 0)}%)"
    return "\n".join([head] + [f"  {line}" for line in objectives])


def _registry_summary(state: dict[str, Any]) -> str:
    entries = state.get("entries", [])
    known = sum(1 for e in entries if e.get("discovered"))
    return f"{known}/{len(entries)} entries discovered"


MODULE_SUMMARIES = {
    "ship": _ship_summary,
    "crew": _crew_summary,
    "inventory": _inventory_summary,
    "mission": _mission_summary,
    "registry": _registry_summary,
}


def render_module_panel(module_states: dict[str, dict[str, Any]]) -> None:
    """One row per live module with a short status line."""
    if not module_states:
        return
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column(style=f"bold {THEME['secondary']}")
    table.add_column()
    for module_id, state in module_states.items():
        summarize = MODULE_SUMMARIES.get(module_id)
        line = summarize(state or {}) if summarize else "active"
        table.add_row(module_id, line)
    console.print(Panel(table, title="Systems", border_style=THEME["dim"]))


# -----------------------------------------------------------------------------
# Library listings
# -----------------------------------------------------------------------------

def render_library(episodes: list[Episode], campaigns: list[Campaign], source_of=None) -> None:
    table = Table(title="Episodes", border_style=THEME["primary"])
    table.add_column("ID", style=THEME["accent"])
    table.add_column("Title")
    table.add_column("Stardate", style=THEME["dim"])
    table.add_column("Modules", style=THEME["dim"])
    table.add_column("Source", style=THEME["dim"])
    for episode in episodes:
        table.add_row(
            episode.id,
            episode.title,
            episode.stardate,
            ", ".join(episode.required_modules or []) or "-",
            source_of(episode.id) if source_of else "",
        )
    console.print(table)

    if not campaigns:
        return
    table = Table(title="Campaigns", border_style=THEME["primary"])
    table.add_column("ID", style=THEME["accent"])
    table.add_column("Title")
    table.add_column("Episodes", justify="right")
    table.add_column("Source", style=THEME["dim"])
    for campaign in campaigns:
        table.add_row(
            campaign.id,
            campaign.title,
            str(len(campaign.episodes)),
            source_of(campaign.id) if source_of else "",
        )
    console.print(table)


def render_campaign_status(summary: dict[str, Any]) -> None:
    done = len(summary.get("completed", []))
    console.print(
        f"[{THEME['secondary']}]{summary.get('campaign')}[/{THEME['secondary']}] "
        f"[{THEME['dim']}]{done}/{summary.get('total', 0)} episodes completed[/{THEME['dim']}]"
    )


def render_lint_report(report: dict[str, list[LintIssue]]) -> None:
    for content_id, issues in report.items():
        if not issues:
            console.print(f"[{THEME['success']}]ok[/{THEME['success']}] {content_id}")
            continue
        for issue in issues:
            color = THEME["danger"] if issue.level == LintLevel.ERROR else THEME["warning"]
            console.print(f"[{color}]{issue.level.value}[/{color}] {content_id}: {issue.location}: {issue.message}")


def render_config(config: dict[str, Any]) -> None:
    table = Table(show_header=False, border_style=THEME["dim"])
    table.add_column(style=THEME["secondary"])
    table.add_column()
    for key, value in config.items():
        table.add_row(key, repr(value))
    console.print(table)
