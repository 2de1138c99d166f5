"""Tests for step definition validation and run state."""

import pytest
from pydantic import ValidationError

from schemas.workflow import (
    ConditionStepConfig,
    ParallelStepConfig,
    StepExecutionResult,
    StepType,
    ToolStepConfig,
    VariableStore,
    WorkflowExecutionContext,
    WorkflowStep,
    parse_workflow_steps,
    record_variable_writes,
)


class TestWorkflowStep:

    def test_camel_case_definition(self):
        step = WorkflowStep.model_validate({
            "id": "fetch",
            "type": "tool",
            "config": {"toolName": "lookup", "parameters": {"q": "{{q}}"}, "outputMapping": {"a": "b"}},
            "onSuccess": "next",
            "onError": "fail",
            "retryConfig": {"maxRetries": 2, "backoffMs": 50},
        })

        assert isinstance(step.config, ToolStepConfig)
        assert step.config.tool_name == "lookup"
        assert step.config.output_mapping == {"a": "b"}
        assert step.on_success == "next"
        assert step.on_error == "fail"
        assert step.retry_config.max_retries == 2
        assert step.retry_config.backoff_ms == 50

    def test_snake_case_construction(self):
        step = WorkflowStep(
            id="check",
            type=StepType.CONDITION,
            config=ConditionStepConfig(expression="x > 1", true_step="yes"),
        )
        assert step.config.false_step is None

    def test_config_chosen_by_type(self):
        # {"steps": [...]} alone would also fit other configs with defaults
        step = WorkflowStep.model_validate({"id": "p", "type": "parallel", "config": {"steps": ["a"]}})
        assert isinstance(step.config, ParallelStepConfig)
        assert step.config.wait_for_all is True

    def test_config_mismatching_type_rejected(self):
        with pytest.raises(ValidationError):
            WorkflowStep(id="x", type=StepType.TOOL, config=ConditionStepConfig(expression="true"))

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            WorkflowStep.model_validate({"id": "x", "type": "loop", "config": {}})

    def test_missing_required_config_field(self):
        with pytest.raises(ValidationError):
            WorkflowStep.model_validate({"id": "x", "type": "tool", "config": {"parameters": {}}})

    def test_negative_retry_rejected(self):
        with pytest.raises(ValidationError):
            WorkflowStep.model_validate({
                "id": "x", "type": "condition", "config": {"expression": "true"},
                "retryConfig": {"maxRetries": -1, "backoffMs": 10},
            })

    def test_steps_are_immutable(self):
        step = WorkflowStep.model_validate({"id": "x", "type": "condition", "config": {"expression": "true"}})
        with pytest.raises(ValidationError):
            step.on_success = "y"

    def test_parse_workflow_steps(self):
        steps = parse_workflow_steps([
            {"id": "a", "type": "condition", "config": {"expression": "true"}, "onSuccess": "b"},
            {"id": "b", "type": "transform", "config": {"outputVariable": "out"}},
        ])
        assert [s.type for s in steps] == [StepType.CONDITION, StepType.TRANSFORM]


class TestRunState:

    def test_context_wraps_plain_dict(self):
        context = WorkflowExecutionContext(
            workflow_id="wf", run_id="r", org_id="o", user_id="u", variables={"input": {"x": 1}},
        )
        assert isinstance(context.variables, VariableStore)
        assert context.variables["input"] == {"x": 1}

    def test_context_writes_reach_callers_dict(self):
        variables = {"input": {"x": 1}}
        context = WorkflowExecutionContext(
            workflow_id="wf", run_id="r", org_id="o", user_id="u", variables=variables,
        )
        context.variables["out"] = 2
        assert variables == {"input": {"x": 1}, "out": 2}

    def test_empty_callers_dict_is_kept(self):
        variables = {}
        context = WorkflowExecutionContext(
            workflow_id="wf", run_id="r", org_id="o", user_id="u", variables=variables,
        )
        context.variables["out"] = 1
        assert variables == {"out": 1}

    def test_variable_writes_are_recorded(self):
        store = VariableStore()
        with record_variable_writes() as writes:
            store["a"] = 1
            store["a"] = 2
            store["b"] = 3
        store["c"] = 4
        assert writes == {"a", "b"}
        assert store == {"a": 2, "b": 3, "c": 4}

    def test_result_to_dict(self):
        result = StepExecutionResult(step_id="s", step_type=StepType.TOOL, success=True, data={"k": 1})
        as_dict = result.to_dict()
        assert as_dict["step_type"] == "tool"
        assert as_dict["attempt"] == 1
        assert as_dict["resources_created"] == []

    def test_not_found_result_to_dict(self):
        result = StepExecutionResult(step_id="ghost", step_type=None, success=False, error="Step not found: ghost")
        assert result.to_dict()["step_type"] is None
