"""Tests for artifacts and workflow data models."""

import pandas as pd

from processing.base import ProcessingError
from workflow import (
    Artifact,
    ErrorInfo,
    StepConfig,
    StepExecutionError,
    StepResult,
    StepStatus,
    WorkflowStatus,
)


class TestArtifact:

    def test_kinds(self):
        assert Artifact.from_file("a.csv").kind == "file"
        assert Artifact.from_url("http://x/a.csv", "a.csv").kind == "file"
        assert Artifact.from_table(pd.DataFrame({"a": [1]})).kind == "table"
        assert Artifact.from_text("{}", "a.json").kind == "text"

    def test_table_describe_and_dict(self):
        artifact = Artifact.from_table(pd.DataFrame({"a": [1, 2], "b": [3, 4]}), "t.csv", rows_in=9)
        assert artifact.describe() == "t.csv (table, 2 rows x 2 columns)"
        data = artifact.to_dict()
        assert data["columns"] == ["a", "b"]
        assert data["rows"] == 2
        assert data["metadata"] == {"rows_in": 9}

    def test_renamed_copies_metadata(self):
        original = Artifact.from_text("x", "a.txt", source="test")
        renamed = original.renamed("b.txt")
        renamed.metadata["source"] = "changed"
        assert renamed.name == "b.txt"
        assert original.metadata["source"] == "test"

    def test_suffix(self):
        assert Artifact.from_file("/tmp/Report.XLSX").suffix == ".xlsx"


class TestModels:

    def test_fingerprint_tracks_config(self):
        config = StepConfig(id="a", type="extraction", config={"columns": ["x"]})
        same = StepConfig(id="a", type="extraction", config={"columns": ["x"]})
        changed = StepConfig(id="a", type="extraction", config={"columns": ["y"]})
        assert config.fingerprint() == same.fingerprint()
        assert config.fingerprint() != changed.fingerprint()

    def test_status_terminality(self):
        assert StepStatus.SUCCESS.is_terminal
        assert not StepStatus.PENDING.is_terminal
        assert WorkflowStatus.CANCELLED.is_terminal
        assert not WorkflowStatus.PAUSED.is_terminal

    def test_error_info_from_step_error(self):
        cause = ProcessingError("Bad file", operation="mapping", status_code=422)
        error = StepExecutionError("s1", "Bad file", cause=cause, details=cause.details)

        info = ErrorInfo.from_exception(error)

        assert info.message == "Bad file"
        assert info.type == "StepExecutionError"
        assert info.details["status_code"] == 422
        assert info.details["operation"] == "mapping"
        assert info.details["cause"] == "ProcessingError: Bad file"

    def test_error_info_from_plain_exception(self):
        info = ErrorInfo.from_exception(KeyError())
        assert info.message == "KeyError"
        assert info.details == {}

    def test_step_result_to_dict(self):
        result = StepResult(step_id="a", step_type="extraction", status=StepStatus.FAILED,
                            error=ErrorInfo("boom", "RuntimeError"))
        data = result.to_dict()
        assert data["status"] == "failed"
        assert data["error"]["message"] == "boom"
        assert data["duration_ms"] == 0
