"""
Command-line interface for starbridge.

Main entry point and game loop. Subcommands list, play and lint the
installed content; ``play`` and ``campaign`` run an interactive session
that reads the player's choice with prompt_toolkit. At the prompt,
``m <module> <ACTION> [json]`` runs a module action directly. Failed saves
and aborted effect chains are printed as the event bus reports them.
"""

import argparse
import json
import logging
import random
import sys
from pathlib import Path

from prompt_toolkit import prompt as pt_prompt
from rich.markup import escape

from ..content.library import ContentLibrary
from ..content.lint import has_errors, lint_library
from ..engine.campaign import CampaignSession
from ..engine.walker import SceneGraphWalker
from ..errors import CampaignNotFoundError, EpisodeNotFoundError, StarbridgeError
from ..modules.registry import ModuleRegistry, create_default_registry
from ..state.event_bus import EventBus, EventType, get_event_bus
from ..state.schema import ModuleAction
from ..state.store import JsonProgressStore
from .config import Config, load_config, set_from_string
from .renderer import (
    THEME,
    console,
    pt_style,
    render_alerts,
    render_campaign_status,
    render_choices,
    render_config,
    render_ending,
    render_engine_event,
    render_library,
    render_lint_report,
    render_module_panel,
    render_scene,
)

logger = logging.getLogger(__name__)

QUIT_WORDS = ("q", "quit", "exit")
ENGINE_NOTICES = (EventType.PERSISTENCE_FAILED, EventType.PROPAGATION_ABORTED)


class Session:
    """Everything a subcommand needs, built once from config and flags."""

    def __init__(self, config: Config):
        self.config = config
        self.data_dir = Path(config.get("data_dir") or "starbridge_data")
        self.store = JsonProgressStore(self.data_dir)
        self.library = ContentLibrary(
            content_dir=config.get("content_dir"),
            user_dir=self.data_dir / "library",
            store=self.store,
        )
        self.rng = random.Random(config.get("rng_seed"))
        self.max_depth = int(config.get("max_propagation_depth") or 8)

    def registry(self) -> ModuleRegistry:
        return create_default_registry(self.rng)


# -----------------------------------------------------------------------------
# Game loop
# -----------------------------------------------------------------------------

def watch_engine_events(bus: EventBus | None = None) -> EventBus:
    """Print failed saves and aborted effect chains as they happen."""
    bus = bus or get_event_bus()
    for event_type in ENGINE_NOTICES:
        bus.on(event_type, render_engine_event)
    return bus


def parse_module_command(raw: str) -> ModuleAction:
    """
    Read ``m <module> <ACTION> [json payload]``.

    The action name is upper-cased; the payload, if given, must be JSON.
    Raises ValueError with a message for the player.
    """
    parts = raw.split(maxsplit=3)
    if len(parts) < 3:
        raise ValueError("Usage: m <module> <ACTION> [json payload]")
    payload = None
    if len(parts) == 4:
        try:
            payload = json.loads(parts[3])
        except json.JSONDecodeError as e:
            raise ValueError(f"Payload is not valid JSON: {e.msg}") from e
    return ModuleAction(module=parts[1].lower(), action=parts[2].upper(), payload=payload)


def _read_choice(count: int) -> int | ModuleAction | None:
    """
    Ask for 1..count. Returns a 0-based index, a module action typed as
    ``m <module> <ACTION>``, or None to quit.
    """
    while True:
        try:
            raw = pt_prompt(f"1-{count}, m <module> <ACTION> or q > ", style=pt_style).strip()
        except (EOFError, KeyboardInterrupt):
            return None
        lowered = raw.lower()
        if lowered in QUIT_WORDS:
            return None
        if lowered.isdigit() and 1 <= int(lowered) <= count:
            return int(lowered) - 1
        if lowered == "m" or lowered.startswith("m "):
            try:
                return parse_module_command(raw)
            except ValueError as e:
                console.print(f"[{THEME['dim']}]{escape(str(e))}[/{THEME['dim']}]")
                continue
        console.print(f"[{THEME['dim']}]Enter a number between 1 and {count}.[/{THEME['dim']}]")


def _run_module_command(walker: SceneGraphWalker, command: ModuleAction) -> None:
    if command.module not in walker.live_modules:
        console.print(f"[{THEME['dim']}]Module '{command.module}' is not active in this episode.[/{THEME['dim']}]")
        return
    result = walker.dispatch_module_action(command.module, command.action, command.payload)
    if not any(i.handled for i in result.interaction_log):
        console.print(f"[{THEME['dim']}]{command.module} does not handle {command.action}.[/{THEME['dim']}]")
    render_alerts(result.alerts)


def _save_notice(walker: SceneGraphWalker) -> str:
    if walker.save():
        return f"[{THEME['dim']}]Progress saved.[/{THEME['dim']}]"
    return f"[{THEME['warning']}]Progress could not be saved.[/{THEME['warning']}]"


def _show(walker: SceneGraphWalker, show_modules: bool) -> None:
    render_scene(walker.current_scene, walker.episode)
    if show_modules:
        render_module_panel({m: walker.game_state.module_states.get(m, {}) for m in walker.live_modules})


def play_episode(walker: SceneGraphWalker, show_modules: bool = True, select=None) -> bool:
    """
    Run one episode to an ending or until the player quits.

    ``select`` overrides how a choice is made (the campaign loop routes
    through its session). Returns True when an ending was reached.
    """
    select = select or walker.select_choice
    _show(walker, show_modules)

    while not walker.is_ending():
        choices = walker.get_available_choices()
        if not choices:
            # Every choice is gated off: nothing more can happen here
            console.print(f"[{THEME['warning']}]No choices are available.[/{THEME['warning']}]")
            console.print(_save_notice(walker))
            return False

        render_choices(choices)
        entry = _read_choice(len(choices))
        if entry is None:
            console.print(_save_notice(walker))
            return False
        if isinstance(entry, ModuleAction):
            _run_module_command(walker, entry)
            _show(walker, show_modules)
            continue

        outcome = select(choices[entry])
        render_alerts(outcome.alerts)
        _show(walker, show_modules)

    render_ending(walker.current_scene)
    return True


def cmd_play(session: Session, args: argparse.Namespace) -> int:
    episode = session.library.get_episode(args.episode)
    if episode is None:
        raise EpisodeNotFoundError(args.episode)

    walker = SceneGraphWalker(
        episode,
        session.registry(),
        store=session.store,
        max_propagation_depth=session.max_depth,
    )
    walker.start(resume=not args.new)
    if walker.is_ending() and not args.new:
        # A finished save would only show the ending again
        walker.start()
    play_episode(walker, session.config.get("show_module_panel", True))
    return 0


def cmd_campaign(session: Session, args: argparse.Namespace) -> int:
    campaign = session.library.get_campaign(args.campaign)
    if campaign is None:
        raise CampaignNotFoundError(f"Campaign '{args.campaign}' not found")

    campaign_session = CampaignSession(
        campaign,
        session.library,
        session.registry(),
        session.store,
        max_propagation_depth=session.max_depth,
    )
    walker = campaign_session.start(reset=args.reset)
    show_modules = session.config.get("show_module_panel", True)

    while walker is not None:
        render_campaign_status(campaign_session.summary())
        if not play_episode(walker, show_modules, select=campaign_session.select_choice):
            campaign_session.exit()
            return 0
        walker = campaign_session.advance()

    render_campaign_status(campaign_session.summary())
    console.print(f"[bold {THEME['success']}]Campaign complete.[/bold {THEME['success']}] Use --reset to play again.")
    return 0


# -----------------------------------------------------------------------------
# Library commands
# -----------------------------------------------------------------------------

def cmd_list(session: Session, args: argparse.Namespace) -> int:
    render_library(session.library.list_episodes(), session.library.list_campaigns(), session.library.source_of)
    return 0


def cmd_import(session: Session, args: argparse.Namespace) -> int:
    if args.campaign:
        result = session.library.import_campaigns(args.files)
    else:
        result = session.library.import_episodes(args.files)

    for error in result.errors:
        console.print(f"[{THEME['danger']}]{error}[/{THEME['danger']}]")
    kind = "campaign" if args.campaign else "episode"
    console.print(f"Imported {result.added} {kind}(s).")
    return 0 if result.success else 1


def cmd_export(session: Session, args: argparse.Namespace) -> int:
    if args.campaign:
        text = session.library.export_campaign(args.id, args.output)
    else:
        text = session.library.export_episode(args.id, args.output)
    if args.output is None:
        sys.stdout.write(text)
    else:
        console.print(f"Wrote {args.output}")
    return 0


def cmd_lint(session: Session, args: argparse.Namespace) -> int:
    known = session.registry().get_available_modules()
    report = lint_library(session.library, known, args.ids or None)
    render_lint_report(report)
    return 1 if any(has_errors(issues) for issues in report.values()) else 0


def cmd_config(session: Session, args: argparse.Namespace) -> int:
    data_dir = session.data_dir
    for assignment in args.set or []:
        key, sep, value = assignment.partition("=")
        if not sep:
            raise StarbridgeError(f"Expected KEY=VALUE, got '{assignment}'")
        try:
            set_from_string(key.strip(), value.strip(), data_dir)
        except ValueError as e:
            raise StarbridgeError(str(e)) from e
    render_config(dict(load_config(data_dir)))
    return 0


COMMANDS = {
    "list": cmd_list,
    "play": cmd_play,
    "campaign": cmd_campaign,
    "import": cmd_import,
    "export": cmd_export,
    "lint": cmd_lint,
    "config": cmd_config,
}


# -----------------------------------------------------------------------------
# Main
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="starbridge", description="Starship bridge narrative engine")
    parser.add_argument("--data-dir", help="Saves, progress and imported content (default: starbridge_data)")
    parser.add_argument("--content-dir", help="Extra directory with episodes/ and campaigns/")
    parser.add_argument("--seed", type=int, help="Seed module randomness for a reproducible run")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List installed episodes and campaigns")

    play = sub.add_parser("play", help="Play a single episode")
    play.add_argument("episode")
    play.add_argument("--new", action="store_true", help="Ignore any saved game and start over")

    campaign = sub.add_parser("campaign", help="Play a campaign")
    campaign.add_argument("campaign")
    campaign.add_argument("--reset", action="store_true", help="Forget campaign progress first")

    imp = sub.add_parser("import", help="Import episode or campaign JSON files")
    imp.add_argument("files", nargs="+")
    imp.add_argument("--campaign", action="store_true", help="Files are campaigns")

    exp = sub.add_parser("export", help="Export an episode or campaign as JSON")
    exp.add_argument("id")
    exp.add_argument("--campaign", action="store_true", help="Export a campaign")
    exp.add_argument("-o", "--output", help="Write to a file instead of stdout")

    lint = sub.add_parser("lint", help="Check content for broken links and unreachable scenes")
    lint.add_argument("ids", nargs="*")

    config = sub.add_parser("config", help="Show or change settings")
    config.add_argument("--set", action="append", metavar="KEY=VALUE")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    data_dir = args.data_dir or "starbridge_data"
    config = load_config(data_dir)
    config["data_dir"] = data_dir
    if args.content_dir:
        config["content_dir"] = args.content_dir
    if args.seed is not None:
        config["rng_seed"] = args.seed

    level = "DEBUG" if args.verbose else str(config.get("log_level") or "WARNING").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    watch_engine_events()
    try:
        session = Session(config)
        return COMMANDS[args.command](session, args)
    except StarbridgeError as e:
        console.print(f"[{THEME['danger']}]Error:[/{THEME['danger']}] {e}")
        return 1
