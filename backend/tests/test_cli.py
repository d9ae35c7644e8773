"""Tests for the tabflow CLI, run in-process with click's CliRunner."""

import pandas as pd
import pytest
from click.testing import CliRunner

from workflow_cli import cli


EXPORT_WORKFLOW = """
name: Adults
steps:
  - id: pick
    type: extraction
    config:
      columns: [name, age]
  - id: adults
    type: search
    config:
      output_format: csv
      conditions:
        - column: age
          operator: greater_than
          value: 20
"""

BROKEN_WORKFLOW = """
name: Broken
steps:
  - id: map
    type: mapping
    config:
      mapping: {}
"""

MISSING_COLUMN_WORKFLOW = """
name: Missing column
steps:
  - id: pick
    type: extraction
    config:
      columns: [phone]
"""


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def write_workflow(tmp_path):
    def factory(content: str, name: str = "workflow.yaml"):
        path = tmp_path / name
        path.write_text(content)
        return str(path)
    return factory


class TestRunCommand:
    """Tests for 'tabflow run' with local processing."""

    def test_run_writes_output(self, runner, write_workflow, people_csv, tmp_path):
        output = tmp_path / "adults.csv"

        result = runner.invoke(cli, [
            "run", write_workflow(EXPORT_WORKFLOW),
            "--input", str(people_csv), "--local", "--output", str(output),
        ])

        assert result.exit_code == 0, result.output
        assert "Workflow completed" in result.output
        table = pd.read_csv(output)
        assert list(table.columns) == ["name", "age"]
        assert table["age"].tolist() == [34, 52, 27]

    def test_run_reports_failed_step(self, runner, write_workflow, people_csv):
        result = runner.invoke(cli, [
            "run", write_workflow(MISSING_COLUMN_WORKFLOW), "--input", str(people_csv), "--local",
        ])

        assert result.exit_code == 1
        assert "Workflow failed" in result.output
        assert "phone" in result.output

    def test_run_invalid_workflow(self, runner, write_workflow, people_csv):
        result = runner.invoke(cli, [
            "run", write_workflow(BROKEN_WORKFLOW), "--input", str(people_csv), "--local",
        ])

        assert result.exit_code == 1
        assert "validation failed" in result.output

    def test_run_requires_input(self, runner, write_workflow):
        result = runner.invoke(cli, ["run", write_workflow(EXPORT_WORKFLOW)])
        assert result.exit_code != 0
        assert "--input" in result.output


class TestInspectionCommands:
    """Tests for validate, show and types."""

    def test_validate_ok(self, runner, write_workflow):
        result = runner.invoke(cli, ["validate", write_workflow(EXPORT_WORKFLOW)])
        assert result.exit_code == 0
        assert "is valid" in result.output

    def test_validate_reports_errors(self, runner, write_workflow):
        result = runner.invoke(cli, ["validate", write_workflow(BROKEN_WORKFLOW)])
        assert result.exit_code == 1
        assert "At least one column mapping must be defined" in result.output

    def test_validate_unreadable_file(self, runner, write_workflow):
        result = runner.invoke(cli, ["validate", write_workflow("- not\n- a mapping\n")])
        assert result.exit_code == 1
        assert "Cannot load workflow" in result.output

    def test_show(self, runner, write_workflow):
        result = runner.invoke(cli, ["show", write_workflow(EXPORT_WORKFLOW)])
        assert result.exit_code == 0
        assert "pick (extraction)" in result.output
        assert "adults (search)" in result.output

    def test_types(self, runner):
        result = runner.invoke(cli, ["types"])
        assert result.exit_code == 0
        assert "sql-generation" in result.output
        assert "binding-single" in result.output
