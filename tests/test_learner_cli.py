# ABOUTME: Exercises the learner CLI commands through Typer's test runner.
# ABOUTME: Each test works on a temporary snapshot file and never calls a real LLM.

import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from scripts import learner_cli
from src.common.config import CONFIG_ENV, SNAPSHOT_ENV

runner = CliRunner()


class FakeAnswerer:
    async def answer(self, prompt):
        return "Focus on calculus limits next."


@pytest.fixture
def snapshot_path(tmp_path, monkeypatch):
    monkeypatch.delenv(CONFIG_ENV, raising=False)
    monkeypatch.delenv(SNAPSHOT_ENV, raising=False)
    return tmp_path / "learner.json"


def invoke(snapshot_path, *args):
    return runner.invoke(learner_cli.app, ["--snapshot", str(snapshot_path), *args])


def test_cli_registers_commands():
    command_names = {cmd.name or cmd.callback.__name__ for cmd in learner_cli.app.registered_commands}
    for name in ("status", "recommend", "answer", "practice", "forecast", "simulate", "analytics", "roadmap", "ask"):
        assert name in command_names


def test_status_on_fresh_learner(snapshot_path):
    result = invoke(snapshot_path, "status")
    assert result.exit_code == 0, result.output
    assert "Ability (theta):" in result.output
    assert "normal" in result.output
    assert not snapshot_path.exists()


def test_answer_persists_snapshot(snapshot_path):
    result = invoke(snapshot_path, "answer", "--item-id", "q1", "--option", "1", "--latency-ms", "4000", "--confidence", "4")
    assert result.exit_code == 0, result.output
    assert "correct" in result.output

    payload = json.loads(snapshot_path.read_text())
    assert payload["version"] == 1
    assert payload["mastery"]["algebra_basics"]["value"] > 0.2
    assert payload["confidence"] == {"algebra_basics": [4]}

    history = invoke(snapshot_path, "history")
    assert history.exit_code == 0, history.output
    assert "Algebra" in history.output


def test_answer_rejects_bad_option(snapshot_path):
    result = invoke(snapshot_path, "answer", "--item-id", "q1", "--option", "7", "--latency-ms", "4000")
    assert result.exit_code == 1
    assert "Rejected" in result.output
    assert not snapshot_path.exists()


def test_record_raw_response(snapshot_path):
    result = invoke(
        snapshot_path, "record", "--concept-id", "geometry_triangles", "--incorrect", "--latency-ms", "900"
    )
    assert result.exit_code == 0, result.output
    payload = json.loads(snapshot_path.read_text())
    assert payload["history"][0]["correct"] is False


def test_record_rejects_unknown_concept(snapshot_path):
    result = invoke(snapshot_path, "record", "--concept-id", "astrology", "--correct", "--latency-ms", "900")
    assert result.exit_code == 1


def test_recommend(snapshot_path):
    result = invoke(snapshot_path, "recommend")
    assert result.exit_code == 0, result.output
    assert "Next concept" in result.output


def test_reports(snapshot_path):
    invoke(snapshot_path, "answer", "--item-id", "q3", "--option", "0", "--latency-ms", "6000", "--confidence", "5")
    for args in (("forecast", "--days", "3"), ("analytics",), ("roadmap",), ("status",)):
        result = invoke(snapshot_path, *args)
        assert result.exit_code == 0, result.output


def test_simulate_does_not_write(snapshot_path):
    result = invoke(snapshot_path, "simulate", "--days", "3", "--set", "algebra_basics=0.9")
    assert result.exit_code == 0, result.output
    assert "90%" in result.output
    assert not snapshot_path.exists()

    bad = invoke(snapshot_path, "simulate", "--set", "astrology=0.5")
    assert bad.exit_code == 1


def test_practice_loop(snapshot_path):
    result = runner.invoke(
        learner_cli.app,
        ["--snapshot", str(snapshot_path), "practice", "--rounds", "2"],
        input="0\n3\n1\n4\n",
    )
    assert result.exit_code == 0, result.output
    payload = json.loads(snapshot_path.read_text())
    assert len(payload["history"]) == 2


def test_ask_uses_assistant(snapshot_path):
    with patch.object(learner_cli, "answerer_from_env", return_value=FakeAnswerer()):
        result = invoke(snapshot_path, "ask", "What next?")
    assert result.exit_code == 0, result.output
    assert "Focus on calculus limits next." in result.output


def test_missing_config_exits_cleanly(snapshot_path, tmp_path):
    result = runner.invoke(
        learner_cli.app,
        ["--config", str(tmp_path / "absent.yaml"), "--snapshot", str(snapshot_path), "status"],
    )
    assert result.exit_code == 1
    assert "Could not read configuration" in result.output
    assert not isinstance(result.exception, FileNotFoundError)
