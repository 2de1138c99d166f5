"""Tests for transform operations."""

import pytest

from schemas.workflow import Transformation
from workflows.transforms import TransformError, apply_transformation, apply_transformations


def t(target, op, **config):
    return Transformation(field=target, operation=op, config=config)


ITEMS = [
    {"name": "a", "status": "active", "score": 3},
    {"name": "b", "status": "inactive", "score": 7},
    {"name": "c", "status": "active", "score": 5},
]


class TestOperations:

    def test_extract(self):
        data = {"response": {"body": {"total": 12}}}
        assert apply_transformation(data, t("response", "extract", path="body.total")) == {"response": 12}

    def test_map(self):
        assert apply_transformation({"items": ITEMS}, t("items", "map", field="name")) == {"items": ["a", "b", "c"]}

    def test_filter(self):
        result = apply_transformation({"items": ITEMS}, t("items", "filter", field="status", value="active"))
        assert [i["name"] for i in result["items"]] == ["a", "c"]

    def test_filter_scalars_without_field(self):
        assert apply_transformation({"xs": [1, 2, 1]}, t("xs", "filter", value=1)) == {"xs": [1, 1]}

    @pytest.mark.parametrize("operation,expected", [
        ("sum", 15),
        ("avg", 5),
        ("min", 3),
        ("max", 7),
        ("count", 3),
    ])
    def test_aggregate(self, operation, expected):
        result = apply_transformation({"items": ITEMS}, t("items", "aggregate", operation=operation, field="score"))
        assert result == {"items": expected}

    def test_aggregate_ignores_non_numbers(self):
        result = apply_transformation({"xs": [1, "2", None, True, 4]}, t("xs", "aggregate", operation="sum"))
        assert result == {"xs": 5}

    def test_aggregate_empty(self):
        assert apply_transformation({"xs": []}, t("xs", "aggregate", operation="max")) == {"xs": None}
        assert apply_transformation({"xs": []}, t("xs", "aggregate", operation="avg")) == {"xs": 0}

    def test_format(self):
        data = {"user": {"first": "Ada", "last": "Lovelace"}}
        result = apply_transformation(data, t("user", "format", template="{last}, {first} {missing}"))
        assert result == {"user": "Lovelace, Ada "}

    def test_pick(self):
        data = {"user": {"id": 1, "email": "a@b.c", "password": "x"}}
        result = apply_transformation(data, t("user", "pick", fields=["id", "email", "nope"]))
        assert result == {"user": {"id": 1, "email": "a@b.c"}}

    def test_rename(self):
        assert apply_transformation({"old": 1, "keep": 2}, t("old", "rename", to="new")) == {"new": 1, "keep": 2}


class TestEdgeCases:

    def test_input_is_not_mutated(self):
        data = {"items": list(ITEMS)}
        apply_transformation(data, t("items", "map", field="name"))
        assert data["items"] == ITEMS

    def test_absent_field_leaves_data_unchanged(self):
        assert apply_transformation({"a": 1}, t("missing", "map", field="x")) == {"a": 1}

    def test_wrong_shape_is_passed_through(self):
        assert apply_transformation({"n": 5}, t("n", "map", field="x")) == {"n": 5}

    def test_missing_required_config(self):
        with pytest.raises(TransformError):
            apply_transformation({"items": ITEMS}, t("items", "map"))

    def test_unknown_aggregate(self):
        with pytest.raises(TransformError):
            apply_transformation({"items": [1]}, t("items", "aggregate", operation="median"))

    def test_unknown_operation_rejected_at_definition(self):
        with pytest.raises(ValueError):
            Transformation(field="x", operation="explode")


def test_pipeline_runs_in_order():
    data = {"items": ITEMS}
    result = apply_transformations(data, [
        t("items", "filter", field="status", value="active"),
        t("items", "aggregate", operation="sum", field="score"),
        t("items", "rename", to="activeScore"),
    ])
    assert result == {"activeScore": 8}
