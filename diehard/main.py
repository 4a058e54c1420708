"""
Die Hard - Main Entry Point

A moderator's command line for the roll adjustment engine: author fudge
rules, configure karma, feed rolls through the engine and inspect karma
statistics. All state lives as JSON under a data directory.
"""

import argparse
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from diehard.data_models import (
    ALL_ACTORS,
    PRIMARY_DIE_FACES,
    DiceRoller,
    RollOutcome,
    RollType,
    outcome_from_values,
)
from diehard.engine.formula_parser import FormulaParseError
from diehard.engine.roll_processor import RollAdjustmentEngine, create_engine
from diehard.observability.run_log import RunLog
from diehard.reporting.karma_stats import KarmaStatistics
from diehard.rules.rule_book import RuleNotFoundError
from diehard.settings.settings import DieHardSettings, SettingsStore, karma_config_to_dict
from diehard.storage.stores import StoreError


# Configure logging
def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class AppConfig:
    """Configuration for one command line invocation."""

    data_dir: Path = field(default_factory=lambda: Path("data"))
    verbose: bool = False
    seed: Optional[int] = None

    def __post_init__(self):
        """Ensure paths are Path objects."""
        if isinstance(self.data_dir, str):
            self.data_dir = Path(self.data_dir)


class DieHardApp:
    """Wires settings, stores, engine and statistics for one data directory."""

    def __init__(self, config: AppConfig):
        self.config = config
        self.settings_store = SettingsStore(config.data_dir)
        self.settings: DieHardSettings = self.settings_store.load()
        self.run_log = RunLog()
        self.engine: RollAdjustmentEngine = create_engine(
            self.settings, data_dir=config.data_dir, run_log=self.run_log
        )
        self.stats = KarmaStatistics(self.settings, self.engine.history_store)
        self.dice = DiceRoller(config.seed)

    def save_settings(self) -> None:
        self.settings_store.save(self.settings)


# =============================================================================
# COMMANDS
# =============================================================================

def cmd_roll(app: DieHardApp, args: argparse.Namespace) -> int:
    outcome: RollOutcome
    if args.values:
        outcome = outcome_from_values(args.values, faces=args.faces, modifier=args.modifier, roll_type=args.roll_type)
    else:
        outcome = app.dice.roll(args.dice, roll_type=args.roll_type)

    print(f"Rolled   {outcome}")
    report = app.engine.process_roll(outcome, args.actor, args.name or args.actor)
    print(f"Final    {outcome}")
    for record in report.records:
        print(f"  {record}")
    for error in report.errors:
        print(f"  ERROR: {error}")
    return 1 if report.errors else 0


def cmd_fudge(app: DieHardApp, args: argparse.Namespace) -> int:
    book = app.engine.rule_book
    if args.fudge_command == "add":
        try:
            rule = book.add_rule(
                args.formula,
                target_actor_id=args.actor,
                roll_type=args.roll_type,
                persistent=args.persistent,
            )
        except FormulaParseError as e:
            print(str(e))
            return 2
        print(f"Fudge created: {rule.rule_id}")
    elif args.fudge_command == "list":
        rules = book.all_rules()
        if not rules:
            print("No fudges")
        for rule in rules:
            flags = []
            if rule.active:
                flags.append("active")
            if rule.persistent:
                flags.append("persistent")
            print(f"{rule.rule_id}  {rule.target_actor_id:<12} {rule.roll_type:<8} {rule.formula:<8} {' '.join(flags)}")
    elif args.fudge_command == "remove":
        book.remove_rule(args.rule_id)
        print("Fudge removed")
    elif args.fudge_command == "toggle":
        rule = book.toggle_active(args.rule_id)
        print(f"Fudge {rule.rule_id} {'activated' if rule.active else 'deactivated'}")
    elif args.fudge_command == "persist":
        rule = book.toggle_persistent(args.rule_id)
        print(f"Fudge {rule.rule_id} {'persistent' if rule.persistent else 'single-shot'}")
    elif args.fudge_command == "clear":
        book.clear()
        print("All fudges cleared")
    return 0


def cmd_karma(app: DieHardApp, args: argparse.Namespace) -> int:
    karma = app.settings.karma
    if args.karma_command == "set":
        for attr, target, key in (
            ("simple_enabled", karma.simple, "enabled"),
            ("simple_history_size", karma.simple, "history_size"),
            ("simple_threshold", karma.simple, "threshold"),
            ("simple_min_value", karma.simple, "min_value"),
            ("average_enabled", karma.average, "enabled"),
            ("average_history_size", karma.average, "history_size"),
            ("average_threshold", karma.average, "threshold"),
            ("average_adjustment", karma.average, "adjustment"),
            ("average_cumulative", karma.average, "cumulative"),
        ):
            value = getattr(args, attr)
            if value is not None:
                setattr(target, key, value)
        app.save_settings()
        print("Karma configuration saved")
    elif args.karma_command == "actor":
        app.settings.set_karma_for_actor(args.actor, args.enable)
        app.save_settings()
        print(f"Karma {'enabled' if args.enable else 'disabled'} for {args.actor}")

    config = karma_config_to_dict(karma)
    for policy in ("simple", "average"):
        values = ", ".join(f"{k}={v}" for k, v in config[policy].items())
        print(f"{policy}: {values}")
    return 0


def cmd_stats(app: DieHardApp, args: argparse.Namespace) -> int:
    if args.actor:
        for key, value in app.stats.actor_stats(args.actor).to_dict().items():
            print(f"{key}: {value}")
    else:
        print(app.stats.format_quick_stats())
    return 0


def cmd_history(app: DieHardApp, args: argparse.Namespace) -> int:
    if args.actor:
        app.engine.history_store.clear_history(args.actor)
        app.engine.counter_store.reset_counter(args.actor)
        print(f"History cleared for {args.actor}")
    else:
        for actor_id in app.engine.history_store.actor_ids():
            app.engine.counter_store.reset_counter(actor_id)
        app.engine.history_store.clear_all()
        print("All roll history cleared")
    return 0


def cmd_pause(app: DieHardApp, args: argparse.Namespace) -> int:
    app.settings.fudges_paused = args.command == "pause"
    app.save_settings()
    print(f"Fudge {'paused' if app.settings.fudges_paused else 'resumed'}")
    return 0


def cmd_toggle(app: DieHardApp, args: argparse.Namespace) -> int:
    enabled = args.state == "on"
    if args.policy == "fudge":
        app.settings.enable_fudge = enabled
    else:
        app.settings.enable_karma = enabled
    app.save_settings()
    print(f"{args.policy.capitalize()} {'enabled' if enabled else 'disabled'}")
    return 0


COMMANDS = {
    "roll": cmd_roll,
    "fudge": cmd_fudge,
    "karma": cmd_karma,
    "stats": cmd_stats,
    "history": cmd_history,
    "pause": cmd_pause,
    "resume": cmd_pause,
    "enable": cmd_toggle,
}


# =============================================================================
# ARGUMENT PARSING
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""
    parser = argparse.ArgumentParser(
        prog="diehard",
        description="Die Hard - covert fudge and karma for tabletop dice",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m diehard.main fudge add ">= 15" --actor alice
  python -m diehard.main roll --actor alice --dice 1d20+5
  python -m diehard.main karma set --simple-enabled --simple-threshold 8
  python -m diehard.main stats
        """
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=Path("data"),
        help="Directory for settings, rules and history (default: data)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Seed for rolled dice",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    # roll
    roll = sub.add_parser("roll", help="Roll and run the engine over the result")
    roll.add_argument("--actor", required=True, help="Player id making the roll")
    roll.add_argument("--name", help="Display name for audit records")
    source = roll.add_mutually_exclusive_group()
    source.add_argument("--dice", default="1d20", help="Dice notation (default: 1d20)")
    source.add_argument("--values", type=int, nargs="+", help="Explicit die values instead of rolling")
    roll.add_argument("--faces", type=int, default=PRIMARY_DIE_FACES, help="Die size for --values")
    roll.add_argument("--modifier", type=int, default=0, help="Static modifier for --values")
    roll.add_argument("--roll-type", help="System roll type (attack, skill, ...)")

    # fudge
    fudge = sub.add_parser("fudge", help="Manage fudge rules")
    fudge_sub = fudge.add_subparsers(dest="fudge_command", required=True)
    add = fudge_sub.add_parser("add", help="Create a fudge rule")
    add.add_argument("formula", help="Operator and value, e.g. '>= 15'")
    add.add_argument("--actor", default=ALL_ACTORS, help="Target player id (default: all)")
    add.add_argument("--roll-type", default=RollType.RAW.value, help="Roll type selector (default: raw)")
    add.add_argument("--persistent", action="store_true", help="Keep the rule after it fires")
    fudge_sub.add_parser("list", help="List fudge rules")
    for name, help_text in (
        ("remove", "Delete a rule"),
        ("toggle", "Toggle a rule's active flag"),
        ("persist", "Toggle a rule's persistent flag"),
    ):
        p = fudge_sub.add_parser(name, help=help_text)
        p.add_argument("rule_id")
    fudge_sub.add_parser("clear", help="Delete every rule")

    # karma
    karma = sub.add_parser("karma", help="Show or change karma configuration")
    karma_sub = karma.add_subparsers(dest="karma_command")
    karma_sub.add_parser("show", help="Show karma configuration")
    kset = karma_sub.add_parser("set", help="Change karma configuration")
    kset.add_argument("--simple-enabled", action=argparse.BooleanOptionalAction, default=None)
    kset.add_argument("--simple-history-size", type=int)
    kset.add_argument("--simple-threshold", type=int)
    kset.add_argument("--simple-min-value", type=int)
    kset.add_argument("--average-enabled", action=argparse.BooleanOptionalAction, default=None)
    kset.add_argument("--average-history-size", type=int)
    kset.add_argument("--average-threshold", type=int)
    kset.add_argument("--average-adjustment", type=int)
    kset.add_argument("--average-cumulative", action=argparse.BooleanOptionalAction, default=None)
    kactor = karma_sub.add_parser("actor", help="Switch karma on or off for one player")
    kactor.add_argument("actor")
    kactor.add_argument("--enable", action=argparse.BooleanOptionalAction, default=True)

    # stats
    stats = sub.add_parser("stats", help="Show karma statistics")
    stats.add_argument("--actor", help="Show detailed stats for one player")

    # history
    history = sub.add_parser("history", help="Manage roll history")
    history_sub = history.add_subparsers(dest="history_command", required=True)
    clear = history_sub.add_parser("clear", help="Clear roll history")
    clear.add_argument("--actor", help="Only clear this player's history")

    # flags
    sub.add_parser("pause", help="Pause all fudges")
    sub.add_parser("resume", help="Resume fudges")
    enable = sub.add_parser("enable", help="Turn a policy on or off")
    enable.add_argument("policy", choices=["fudge", "karma"])
    enable.add_argument("state", choices=["on", "off"])

    return parser


def create_config_from_args(args: argparse.Namespace) -> AppConfig:
    """Create AppConfig from parsed arguments."""
    return AppConfig(
        data_dir=args.data_dir,
        verbose=args.verbose,
        seed=args.seed,
    )


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for CLI usage."""
    args = build_parser().parse_args(argv)
    config = create_config_from_args(args)

    try:
        app = DieHardApp(config)
        setup_logging(args.verbose or app.settings.debug_logging)
        return COMMANDS[args.command](app, args)
    except RuleNotFoundError as e:
        print(str(e))
        return 2
    except StoreError as e:
        logger.error(f"Storage failure: {e}")
        return 1
    except ValueError as e:
        print(f"Error: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
