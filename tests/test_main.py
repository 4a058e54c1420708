"""
Tests for the command line entry point.

Each test drives diehard.main.main() against a temporary data directory.
"""

import json

import pytest

from diehard.main import AppConfig, build_parser, create_config_from_args, main


@pytest.fixture
def cli(tmp_path, capsys):
    """Run the CLI against a temp data dir and return (exit code, stdout)."""
    def run(*args):
        code = main(["--data-dir", str(tmp_path), *args])
        return code, capsys.readouterr().out
    return run


class TestArgumentParsing:
    """Tests for parser and config construction."""

    def test_config_from_args(self, tmp_path):
        args = build_parser().parse_args(["--data-dir", str(tmp_path), "--seed", "3", "stats"])
        config = create_config_from_args(args)
        assert config.data_dir == tmp_path
        assert config.seed == 3

    def test_config_accepts_string_path(self):
        assert AppConfig(data_dir="somewhere").data_dir.name == "somewhere"

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestFudgeCommands:
    """Tests for fudge rule management."""

    def test_add_list_and_fire(self, cli, tmp_path):
        code, out = cli("fudge", "add", ">= 15", "--actor", "alice")
        assert code == 0
        rule_id = out.strip().split()[-1]

        _, out = cli("fudge", "list")
        assert rule_id in out
        assert "active" in out

        code, out = cli("roll", "--actor", "alice", "--values", "3")
        assert code == 0
        assert "FUDGE alice" in out
        assert "[15]" in out

        rules = json.loads((tmp_path / "fudges.json").read_text())
        assert rules[rule_id]["active"] is False

    def test_bad_formula(self, cli):
        code, out = cli("fudge", "add", "big")
        assert code == 2
        assert "Invalid formula" in out

    def test_toggle_remove_clear(self, cli):
        _, out = cli("fudge", "add", "<= 4")
        rule_id = out.strip().split()[-1]
        _, out = cli("fudge", "toggle", rule_id)
        assert "deactivated" in out
        _, out = cli("fudge", "persist", rule_id)
        assert "persistent" in out
        code, _ = cli("fudge", "remove", rule_id)
        assert code == 0
        code, out = cli("fudge", "remove", rule_id)
        assert code == 2
        assert "No fudge rule" in out
        cli("fudge", "add", "<= 4")
        cli("fudge", "clear")
        _, out = cli("fudge", "list")
        assert "No fudges" in out

    def test_pause_and_resume(self, cli):
        cli("fudge", "add", ">= 15")
        cli("pause")
        _, out = cli("roll", "--actor", "alice", "--values", "3")
        assert "FUDGE" not in out
        cli("resume")
        _, out = cli("roll", "--actor", "alice", "--values", "3")
        assert "FUDGE" in out


class TestKarmaCommands:
    """Tests for karma configuration, stats and history."""

    def test_simple_karma_from_cli(self, cli):
        cli(
            "karma", "set", "--simple-enabled", "--simple-history-size", "3",
            "--average-history-size", "3",
        )
        for value in ("4", "6", "9"):
            cli("roll", "--actor", "alice", "--values", value)
        _, out = cli("roll", "--actor", "alice", "--values", "3")
        assert "SIMPLE KARMA alice" in out

        _, out = cli("stats")
        assert "alice" in out
        _, out = cli("stats", "--actor", "alice")
        assert "recent_rolls: [6, 9, 15]" in out

    def test_karma_show(self, cli):
        code, out = cli("karma")
        assert code == 0
        assert "simple: enabled=False" in out

    def test_actor_switch_persisted(self, cli, tmp_path):
        cli("karma", "actor", "bob", "--no-enable")
        settings = json.loads((tmp_path / "settings.json").read_text())
        assert settings["karma_disabled_actors"] == ["bob"]

    def test_history_clear(self, cli):
        cli("roll", "--actor", "alice", "--values", "12")
        _, out = cli("history", "clear", "--actor", "alice")
        assert "cleared for alice" in out
        _, out = cli("stats")
        assert "No roll history yet" in out

    def test_enable_toggle(self, cli, tmp_path):
        cli("enable", "karma", "off")
        settings = json.loads((tmp_path / "settings.json").read_text())
        assert settings["enable_karma"] is False


class TestRollCommand:
    """Tests for rolling dice from the CLI."""

    def test_seeded_notation_roll(self, cli):
        code, out = cli("--seed", "1", "roll", "--actor", "alice", "--dice", "1d20+5")
        assert code == 0
        assert out.startswith("Rolled   1d20+5")

    def test_invalid_notation(self, cli):
        code, out = cli("roll", "--actor", "alice", "--dice", "zz")
        assert code == 2
        assert "Invalid dice notation" in out
