from __future__ import annotations

import json

from typer.testing import CliRunner

from mom3nt.cli import app


def test_cli_smoke(tmp_path, monkeypatch, cycle_config):
    runner = CliRunner()
    monkeypatch.setenv("MOM3NT_OWNER", "u1")

    blocked = runner.invoke(app, ["log", "--value", "225", "--date", "2025-09-01"])
    assert blocked.exit_code == 1
    assert "Set your name and gender" in blocked.output

    profile_result = runner.invoke(app, ["profile", "set", "--name", "Alice", "--gender", "female"])
    assert profile_result.exit_code == 0, profile_result.output
    assert "Profile saved: Alice (female)" in profile_result.stdout

    log_result = runner.invoke(app, ["log", "--value", "225", "--date", "2025-09-01", "--notes", "smoke"])
    assert log_result.exit_code == 0, log_result.output
    assert "[Alice] Logged 2025-09-01 Squat: 225 lbs" in log_result.stdout

    unscheduled = runner.invoke(app, ["log", "--value", "10", "--date", "2025-08-31"])
    assert unscheduled.exit_code == 1
    assert "No movement is scheduled" in unscheduled.output

    board = runner.invoke(app, ["leaderboard", "--date", "2025-09-01"])
    assert board.exit_code == 0, board.output
    assert "Squat (higher is better)" in board.stdout
    assert "Alice" in board.stdout

    series_result = runner.invoke(app, ["series", "--movement", "Squat"])
    assert series_result.exit_code == 0, series_result.output
    assert "2025-09-01  225 lbs" in series_result.stdout

    mine_result = runner.invoke(app, ["mine"])
    assert "Squat: 1 entries, best 225" in mine_result.stdout

    export_dir = tmp_path / "exports"
    export_result = runner.invoke(app, ["export", "--to", str(export_dir), "--owner", "u1"])
    assert export_result.exit_code == 0, export_result.output

    assert list(export_dir.glob("*.csv")), "Expected a CSV export"
    raw_json = [path for path in export_dir.glob("*.json") if not path.name.endswith("_metadata.json")]
    metadata_files = list(export_dir.glob("*_metadata.json"))
    assert raw_json and metadata_files

    metadata_payload = json.loads(metadata_files[0].read_text(encoding="utf-8"))
    assert metadata_payload["application"] == "mom3nt"
    assert metadata_payload["rows"] == 1
    assert metadata_payload["filters"]["owner"] == "u1"

    import_result = runner.invoke(app, ["import", str(raw_json[0])])
    assert import_result.exit_code == 0, import_result.output
    assert "Imported 1 entries" in import_result.stdout


def test_cli_schedule_commands(cycle_config):
    runner = CliRunner()

    resolved = runner.invoke(app, ["resolve", "--date", "2025-08-31"])
    assert resolved.exit_code == 0, resolved.output
    assert "Sunday 2025-08-31: TBD" in resolved.stdout

    month = runner.invoke(app, ["calendar", "--month", "2025-09"])
    assert month.exit_code == 0, month.output
    assert "September 2025" in month.stdout
    assert "2025-09-01 Mon  Squat" in month.stdout

    config_result = runner.invoke(app, ["config"])
    assert "Fallback policy: missing-weekday" in config_result.stdout
    assert "A: 2025-09-01 to 2025-09-07 (1 weeks)" in config_result.stdout

    assert runner.invoke(app, ["today"]).exit_code == 0


def test_cli_requires_owner():
    runner = CliRunner()
    result = runner.invoke(app, ["mine"])
    assert result.exit_code == 1
    assert "No member selected" in result.output


def test_cli_reports_configuration_errors(write_config):
    write_config(
        """
        [[cycles]]
        start = "2025-09-14"
        end = "2025-09-01"
        """
    )
    result = CliRunner().invoke(app, ["today"])
    assert result.exit_code == 2
    assert "Configuration error" in result.output


def test_cli_logs_and_ranks_huge_values(monkeypatch, cycle_config):
    runner = CliRunner()
    monkeypatch.setenv("MOM3NT_OWNER", "u1")
    runner.invoke(app, ["profile", "set", "--name", "Alice", "--gender", "female"])

    logged = runner.invoke(app, ["log", "--value", "1e30", "--date", "2025-09-01"])
    assert logged.exit_code == 0, logged.output
    assert "Squat: 1" + "0" * 30 + " lbs" in logged.stdout

    board = runner.invoke(app, ["leaderboard", "--date", "2025-09-01"])
    assert board.exit_code == 0, board.output
    assert "Alice" in board.stdout
