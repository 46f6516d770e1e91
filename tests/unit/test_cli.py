"""
Tests for the CloudRecon CLI.

Tests cover:
- Argument parsing
- analyze subcommands and output formats
- Error exit codes
- Table formatting
"""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest

from cloudrecon.cli import create_parser, format_table, main
from cloudrecon.storage import StorageError


@pytest.fixture
def resources_file(tmp_path, sample_snapshot):
    path = tmp_path / "resources.json"
    path.write_text(json.dumps(sample_snapshot.to_list()))
    return str(path)


@pytest.fixture(autouse=True)
def quiet_env(monkeypatch):
    for name in ("CLOUDRECON_CONFIG_FILE", "CLOUDRECON_LOG_LEVEL", "CLOUDRECON_LOG_FORMAT"):
        monkeypatch.delenv(name, raising=False)


class TestParser:
    """Tests for create_parser."""

    def test_defaults(self):
        args = create_parser().parse_args(["analyze"])

        assert args.command == "analyze"
        assert args.analysis == "all"
        assert args.format == "table"

    def test_invalid_analysis(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["analyze", "network"])

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])

        assert exc_info.value.code == 0
        assert "cloudrecon" in capsys.readouterr().out


class TestMain:
    """Tests for main."""

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "usage: cloudrecon" in capsys.readouterr().out

    def test_security_json(self, resources_file, capsys):
        """Test JSON security output from a resources file."""
        exit_code = main(["analyze", "security", "--input", resources_file, "--format", "json"])

        assert exit_code == 0
        data = json.loads(capsys.readouterr().out)
        assert data["summary"]["total_findings"] == 2

    def test_dependencies_table(self, resources_file, capsys):
        """Test the dependency table."""
        assert main(["analyze", "dependencies", "--input", resources_file]) == 0

        output = capsys.readouterr().out
        assert "runs_in_vpc" in output
        assert "uses_security_group" in output

    def test_cost_csv(self, resources_file, capsys):
        """Test CSV cost output."""
        assert main(["analyze", "cost", "--input", resources_file, "--format", "csv"]) == 0

        lines = capsys.readouterr().out.strip().splitlines()
        assert lines[0].startswith("record_type,")
        assert len(lines) == 6

    def test_all_to_file(self, resources_file, tmp_path, capsys):
        """Test writing the composite report to a file."""
        output = tmp_path / "report.json"

        exit_code = main([
            "analyze", "--input", resources_file, "--format", "json", "--output", str(output),
        ])

        assert exit_code == 0
        assert capsys.readouterr().out == ""
        assert json.loads(output.read_text())["summary"]["total_resources"] == 5

    def test_insights(self, resources_file, capsys):
        """Test insight messages are printed one per line."""
        assert main(["analyze", "insights", "--input", resources_file]) == 0

        output = capsys.readouterr().out
        assert "Discovered 5 resources across your cloud infrastructure" in output

    def test_local_database(self, populated_local_store, capsys):
        """Test reading a SQLite store given with --db."""
        exit_code = main([
            "analyze", "cost", "--db", populated_local_store.db_path, "--format", "json",
        ])

        assert exit_code == 0
        assert json.loads(capsys.readouterr().out)["total_monthly_cost"] == 76.0

    def test_missing_input_file(self, tmp_path, capsys):
        """Test a missing resources file exits with an error."""
        assert main(["analyze", "--input", str(tmp_path / "missing.json")]) == 1
        assert "Error:" in capsys.readouterr().err

    def test_store_read_failure(self, capsys):
        """Test an unreadable store exits with an error."""
        store = MagicMock()
        store.get_resources.side_effect = StorageError("database is locked")

        with patch("cloudrecon.cli.get_store", return_value=store):
            exit_code = main(["analyze", "security"])

        assert exit_code == 1
        assert "database is locked" in capsys.readouterr().err

    def test_analyzer_failure_warns(self, resources_file, capsys):
        """Test failed analyzers are reported as warnings."""
        with patch(
            "cloudrecon.analysis.cost.CostAnalyzer.analyze",
            side_effect=RuntimeError("pricing offline"),
        ):
            exit_code = main(["analyze", "--input", resources_file, "--format", "json"])

        captured = capsys.readouterr()
        assert exit_code == 0
        assert "Warning: cost analysis failed: pricing offline" in captured.err
        assert json.loads(captured.out)["errors"] == {"cost": "pricing offline"}


class TestFormatTable:
    """Tests for format_table."""

    def test_empty(self):
        assert format_table([]) == ""

    def test_columns_are_aligned(self):
        table = format_table([{"name": "a", "value": 1}, {"name": "long-name", "value": 22}])
        lines = table.splitlines()

        assert len(lines) == 6
        assert len({len(line) for line in lines}) == 1
        assert "| long-name |" in table
