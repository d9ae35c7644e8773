"""Tests for the Workflow definition: editing, validation and step derivation."""

import pytest

from workflow import (
    DuplicateStepError,
    StepConfig,
    UnknownStepTypeError,
    Workflow,
    WorkflowConfig,
    create_step,
    derive_steps,
)


def assert_in_sync(workflow: Workflow):
    """Steps and configs have the same ids in the same order."""
    assert [s.id for s in workflow.get_steps()] == [c.id for c in workflow.config.steps]


class TestWorkflowConstruction:
    """Tests for building workflows from configs."""

    def test_from_dict(self, step_config):
        workflow = Workflow({"name": "Export", "steps": [step_config("a"), step_config("b")]})

        assert workflow.name == "Export"
        assert workflow.id.startswith("workflow-")
        assert workflow.get_step_count() == 2
        assert_in_sync(workflow)

    def test_from_config_is_copied(self, step_config):
        config = WorkflowConfig.model_validate({"name": "Export", "steps": [step_config("a")]})
        workflow = Workflow(config)
        config.steps.clear()
        assert workflow.get_step_count() == 1

    def test_duplicate_ids_rejected(self, step_config):
        with pytest.raises(DuplicateStepError) as exc_info:
            Workflow({"name": "Dup", "steps": [step_config("a"), step_config("a")]})
        assert exc_info.value.step_id == "a"

    def test_unknown_type_rejected(self):
        with pytest.raises(UnknownStepTypeError):
            Workflow({"name": "Bad", "steps": [{"id": "x", "type": "teleport"}]})

    def test_get_config_is_a_copy(self, make_workflow):
        workflow = make_workflow("a")
        config = workflow.get_config()
        config.steps.clear()
        assert workflow.get_step_count() == 1


class TestWorkflowEditing:
    """Tests for add/remove/update/reorder."""

    def test_add_step_appends(self, make_workflow, step_config):
        workflow = make_workflow("a")
        added = workflow.add_step(step_config("b"))

        assert added.id == "b"
        assert [s.id for s in workflow.get_steps()] == ["a", "b"]
        assert_in_sync(workflow)

    def test_add_step_at_index(self, make_workflow, step_config):
        workflow = make_workflow("a", "c")
        workflow.add_step(StepConfig.model_validate(step_config("b")), index=1)
        assert [s.id for s in workflow.get_steps()] == ["a", "b", "c"]

    def test_add_step_instance(self, make_workflow, step_config):
        workflow = make_workflow("a")
        workflow.add_step(create_step(step_config("b")))
        assert workflow.get_step(1).id == "b"

    def test_add_duplicate_id_fails(self, make_workflow, step_config):
        workflow = make_workflow("a")
        with pytest.raises(DuplicateStepError):
            workflow.add_step(step_config("a"))
        assert workflow.get_step_count() == 1

    def test_add_unknown_type_leaves_workflow_untouched(self, make_workflow):
        workflow = make_workflow("a")
        with pytest.raises(UnknownStepTypeError):
            workflow.add_step({"id": "x", "type": "teleport"})
        assert workflow.get_step_count() == 1
        assert_in_sync(workflow)

    def test_add_updates_timestamp(self, make_workflow, step_config):
        workflow = make_workflow("a")
        before = workflow.config.updated_at
        workflow.add_step(step_config("b"))
        assert workflow.config.updated_at >= before

    def test_remove_step(self, make_workflow):
        workflow = make_workflow("a", "b", "c")
        assert workflow.remove_step("b") is True
        assert [s.id for s in workflow.get_steps()] == ["a", "c"]
        assert_in_sync(workflow)

    def test_remove_missing_step(self, make_workflow):
        workflow = make_workflow("a")
        assert workflow.remove_step("zzz") is False
        assert workflow.get_step_count() == 1

    def test_update_step_rebuilds(self, make_workflow):
        workflow = make_workflow("a")
        old = workflow.get_step(0)

        assert workflow.update_step("a", {"config": {"columns": ["email"]}}) is True

        new = workflow.get_step(0)
        assert new is not old
        assert new.get_config().config["columns"] == ["email"]
        assert workflow.config.steps[0].config["columns"] == ["email"]

    def test_update_step_can_change_type(self, make_workflow):
        workflow = make_workflow("a")
        workflow.update_step("a", {"type": "json-generation", "config": {}})
        assert workflow.get_step(0).type == "json-generation"
        assert workflow.get_step(0).id == "a"

    def test_update_with_step_config_keeps_id(self, make_workflow):
        workflow = make_workflow("a")
        workflow.update_step("a", StepConfig(id="other", type="csv-convert"))
        assert workflow.get_step(0).id == "a"
        assert workflow.get_step(0).type == "csv-convert"

    def test_update_missing_step(self, make_workflow):
        workflow = make_workflow("a")
        assert workflow.update_step("zzz", {"name": "x"}) is False

    def test_unchanged_steps_are_reused(self, make_workflow):
        workflow = make_workflow("a", "b")
        first = workflow.get_step(0)
        workflow.update_step("b", {"name": "Renamed"})
        assert workflow.get_step(0) is first

    def test_reorder_steps(self, make_workflow):
        workflow = make_workflow("a", "b", "c")
        assert workflow.reorder_steps(0, 2) is True
        assert [s.id for s in workflow.get_steps()] == ["b", "c", "a"]
        assert_in_sync(workflow)

    def test_reorder_out_of_range(self, make_workflow):
        workflow = make_workflow("a", "b")
        assert workflow.reorder_steps(0, 5) is False
        assert [s.id for s in workflow.get_steps()] == ["a", "b"]

    def test_disable_step(self, make_workflow):
        workflow = make_workflow("a", "b")
        workflow.set_step_enabled("a", False)
        assert [s.id for s in workflow.get_enabled_steps()] == ["b"]
        assert workflow.get_step_count() == 2

    def test_clone(self, make_workflow):
        workflow = make_workflow("a")
        copy = workflow.clone()
        assert copy.id == "wf-test-copy"
        assert [s.id for s in copy.get_steps()] == ["a"]
        copy.remove_step("a")
        assert workflow.get_step_count() == 1


class TestWorkflowValidation:
    """Tests for Workflow.validate."""

    def test_valid_workflow(self, make_workflow):
        result = make_workflow("a", "b").validate()
        assert result.valid
        assert result.errors == {}

    def test_errors_keyed_by_step_id(self):
        workflow = Workflow({
            "name": "Broken",
            "steps": [
                {"id": "map", "type": "mapping", "config": {"mapping": {}}},
                {"id": "sql", "type": "sql-generation", "config": {"table_name": ""}},
            ],
        })
        result = workflow.validate()

        assert not result.valid
        assert set(result.errors) == {"map", "sql"}
        assert "At least one column mapping must be defined" in result.errors["map"]
        assert "Table name is required" in result.errors["sql"]

    def test_blank_column_name_fails_validation(self):
        workflow = Workflow({
            "name": "Blank column",
            "steps": [{"id": "pick", "type": "extraction", "config": {"columns": ["a", ""]}}],
        })
        result = workflow.validate()

        assert not result.valid
        assert result.errors == {"pick": ["Column names must not be empty"]}

    def test_disabled_steps_are_not_validated(self, step_config):
        workflow = Workflow({
            "name": "Partly broken",
            "steps": [
                step_config("ok"),
                {"id": "off", "type": "mapping", "enabled": False, "config": {}},
            ],
        })
        assert workflow.validate().valid

    def test_empty_workflow_is_valid(self):
        assert Workflow({"name": "Empty"}).validate().valid


class TestDeriveSteps:
    """Tests for the pure config -> steps derivation."""

    def test_builds_one_step_per_config(self, step_config):
        configs = [StepConfig.model_validate(step_config(i)) for i in ("a", "b")]
        steps = derive_steps(configs)
        assert [s.id for s in steps] == ["a", "b"]

    def test_cache_hit_on_identical_config(self, step_config):
        config = StepConfig.model_validate(step_config("a"))
        cached = create_step(config)
        steps = derive_steps([config], {(config.id, config.fingerprint()): cached})
        assert steps[0] is cached

    def test_cache_miss_on_changed_config(self, step_config):
        config = StepConfig.model_validate(step_config("a"))
        cached = create_step(config)
        changed = config.model_copy(update={"name": "Changed"})
        steps = derive_steps([changed], {(config.id, config.fingerprint()): cached})
        assert steps[0] is not cached
        assert steps[0].name == "Changed"
