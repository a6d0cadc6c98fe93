"""CLI tests for processing, log, feedback, and configuration commands."""

import json
import os
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from parafile.cli import cli
from parafile.config import ConfigManager
from parafile.feedback import FeedbackStore
from parafile.processing import ProcessingResult
from parafile.state import ProcessingLog


def _env_with_home(tmp_path: Path) -> dict[str, Any]:
    env: dict[str, Any] = {key: None for key in os.environ if key.startswith("PARAFILE")}
    env["PARAFILE_HOME"] = str(tmp_path / "home")
    env["OPENAI_API_KEY"] = None
    return env


def _manager(tmp_path: Path) -> ConfigManager:
    return ConfigManager(tmp_path / "home" / "config.yaml", env={})


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def test_config_view_creates_and_displays_config(runner: CliRunner, tmp_path: Path) -> None:
    result = runner.invoke(cli, ["config", "view"], env=_env_with_home(tmp_path))

    assert result.exit_code == 0, result.output
    assert "categories:" in result.stdout
    assert (tmp_path / "home" / "config.yaml").exists()


def test_config_set_updates_value(runner: CliRunner, tmp_path: Path) -> None:
    result = runner.invoke(
        cli, ["config", "set", "llm.temperature", "--value", "0.42"], env=_env_with_home(tmp_path)
    )

    assert result.exit_code == 0, result.output
    assert _manager(tmp_path).load().llm.temperature == pytest.approx(0.42)


def test_config_set_rejects_invalid_values(runner: CliRunner, tmp_path: Path) -> None:
    result = runner.invoke(
        cli, ["config", "set", "watch.stability_seconds", "--value", "soon"],
        env=_env_with_home(tmp_path),
    )

    assert result.exit_code != 0


def test_category_and_variable_commands(runner: CliRunner, tmp_path: Path) -> None:
    env = _env_with_home(tmp_path)

    added = runner.invoke(
        cli,
        [
            "config", "add-category", "Invoices",
            "--description", "Bills from vendors",
            "--pattern", "{date}_{vendor}",
        ],
        env=env,
    )
    variable = runner.invoke(
        cli,
        ["config", "add-variable", "vendor", "--description", "Vendor", "--formatting", "pascal"],
        env=env,
    )
    duplicate = runner.invoke(
        cli, ["config", "add-category", "Invoices", "--description", "again"], env=env
    )
    general = runner.invoke(cli, ["config", "delete-category", "General"], env=env)
    original = runner.invoke(cli, ["config", "delete-variable", "original_name"], env=env)

    assert added.exit_code == 0, added.output
    assert variable.exit_code == 0, variable.output
    assert duplicate.exit_code != 0
    assert general.exit_code != 0
    assert original.exit_code != 0

    config = _manager(tmp_path).load()
    assert config.find_category("Invoices") is not None
    assert config.find_variable("vendor").formatting == "pascal"

    removed = runner.invoke(cli, ["config", "delete-category", "Invoices"], env=env)
    assert removed.exit_code == 0
    assert _manager(tmp_path).load().find_category("Invoices") is None


def test_log_reports_empty_history(runner: CliRunner, tmp_path: Path) -> None:
    result = runner.invoke(cli, ["log"], env=_env_with_home(tmp_path))

    assert result.exit_code == 0
    assert "No files have been processed yet." in result.stdout


def test_process_files_a_csv_without_ai(runner: CliRunner, tmp_path: Path) -> None:
    env = _env_with_home(tmp_path)
    inbox = tmp_path / "inbox"
    inbox.mkdir()
    runner.invoke(cli, ["config", "set", "watched_folder", "--value", str(inbox)], env=env)
    source = inbox / "sales.csv"
    source.write_text("region,amount\nnorth,10\n", encoding="utf-8")

    result = runner.invoke(cli, ["process", str(source), "--json"], env=env)

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)["results"][0]
    assert payload["success"] is True
    assert payload["category"] == "General"
    assert payload["newName"] == "sales.csv"
    assert (inbox / "General" / "sales.csv").exists()

    logged = runner.invoke(cli, ["log", "--json"], env=env)
    entries = json.loads(logged.stdout)["entries"]
    assert [entry["originalName"] for entry in entries] == ["sales.csv"]


def test_process_exits_nonzero_on_failure(runner: CliRunner, tmp_path: Path) -> None:
    env = _env_with_home(tmp_path)
    source = tmp_path / "archive.zip"
    source.write_bytes(b"PK")

    result = runner.invoke(cli, ["process", str(source), "--json"], env=env)

    assert result.exit_code == 1
    payload = json.loads(result.stdout)["results"][0]
    assert payload["success"] is False
    assert payload["processingStep"] == "text_extraction"


def _seed_entry(tmp_path: Path) -> str:
    home = tmp_path / "home"
    feedback = FeedbackStore(home / "feedback.json")
    log = ProcessingLog(home / "processing-log.json", feedback=feedback)
    entry = log.add_log_entry(
        ProcessingResult(
            file_path="/in/scan.pdf",
            file_name="scan.pdf",
            success=True,
            category="General",
            new_name="scan.pdf",
        )
    )
    return entry.id


def test_correct_records_feedback(runner: CliRunner, tmp_path: Path) -> None:
    env = _env_with_home(tmp_path)
    runner.invoke(
        cli, ["config", "add-category", "Receipts", "--description", "Paid bills"], env=env
    )
    entry_id = _seed_entry(tmp_path)

    result = runner.invoke(
        cli,
        [
            "correct", entry_id,
            "--category", "Receipts",
            "--category-reason", "paid at the till",
            "--json",
        ],
        env=env,
    )

    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["category"] == "Receipts"

    analysis = runner.invoke(cli, ["feedback", "analyze", "--json"], env=env)
    data = json.loads(analysis.stdout)
    assert data["total_category_corrections"] == 1
    assert data["most_corrected_categories"][0]["category"] == "General"


def test_correct_requires_reason_and_known_category(runner: CliRunner, tmp_path: Path) -> None:
    env = _env_with_home(tmp_path)
    entry_id = _seed_entry(tmp_path)

    unknown = runner.invoke(
        cli,
        ["correct", entry_id, "--category", "Nope", "--category-reason", "x", "--json"],
        env=env,
    )
    no_reason = runner.invoke(cli, ["correct", entry_id, "--name", "better.pdf"], env=env)
    nothing = runner.invoke(cli, ["correct", entry_id], env=env)

    assert unknown.exit_code == 1
    assert json.loads(unknown.stdout)["error"]["code"] == "unknown_category"
    assert no_reason.exit_code != 0
    assert nothing.exit_code == 2


def test_cleanup_removes_empty_folders(runner: CliRunner, tmp_path: Path) -> None:
    target = tmp_path / "tree"
    (target / "a" / "b").mkdir(parents=True)

    result = runner.invoke(cli, ["cleanup", str(target)], env=_env_with_home(tmp_path))

    assert result.exit_code == 0, result.output
    assert not (target / "a").exists()
    assert "Removed 2 empty folder(s)." in result.stdout


def test_suggest_variable_requires_credentials(runner: CliRunner, tmp_path: Path) -> None:
    result = runner.invoke(
        cli, ["config", "suggest-variable", "the invoice number"], env=_env_with_home(tmp_path)
    )

    assert result.exit_code != 0
    assert "credentials" in result.output
