"""Tests for patch_gate/tools/apply_patches.py — PatchApplicator and apply_patches."""

from __future__ import annotations

import pytest

from patch_gate.models import ErrorType, PatchOperation
from patch_gate.tools.apply_patches import PatchApplicator, apply_patches


# ======================================================================
# Basic operations
# ======================================================================
class TestApplyPatchesOperations:
    """Each RFC 6902 operation on its own."""

    def test_add_new_key(self, populated_doc):
        result = apply_patches(populated_doc, [
            {"op": "add", "path": "/metadata/subtitle", "value": "More"},
        ])
        assert result["errors"] == []
        assert result["document"]["metadata"]["subtitle"] == "More"

    def test_add_overwrites_existing_key(self, populated_doc):
        result = apply_patches(populated_doc, [
            {"op": "add", "path": "/metadata/title", "value": "New"},
        ])
        assert result["errors"] == []
        assert result["document"]["metadata"]["title"] == "New"

    def test_add_inserts_into_array_and_shifts(self):
        result = apply_patches({"xs": [1, 2, 3]}, [
            {"op": "add", "path": "/xs/1", "value": 9},
        ])
        assert result["document"]["xs"] == [1, 9, 2, 3]

    def test_add_with_dash_appends(self):
        result = apply_patches({"xs": ["a"]}, [
            {"op": "add", "path": "/xs/-", "value": "b"},
            {"op": "add", "path": "/xs/2", "value": "c"},
        ])
        assert result["errors"] == []
        assert result["document"]["xs"] == ["a", "b", "c"]

    def test_add_past_end_of_array_fails(self):
        result = apply_patches({"xs": ["a"]}, [
            {"op": "add", "path": "/xs/5", "value": "b"},
        ])
        assert result["errors"][0].type == ErrorType.PATH_NOT_FOUND
        assert result["document"]["xs"] == ["a"]

    def test_add_with_missing_parent_fails(self):
        result = apply_patches({}, [
            {"op": "add", "path": "/a/b", "value": 1},
        ])
        assert result["errors"][0].type == ErrorType.PATH_NOT_FOUND
        assert result["document"] == {}

    def test_add_at_root_replaces_document(self):
        result = apply_patches({"a": 1}, [
            {"op": "add", "path": "", "value": {"b": 2}},
        ])
        assert result["document"] == {"b": 2}

    def test_add_null_value(self):
        result = apply_patches({}, [{"op": "add", "path": "/a", "value": None}])
        assert result["errors"] == []
        assert result["document"] == {"a": None}

    def test_remove_existing(self, populated_doc):
        result = apply_patches(populated_doc, [
            {"op": "remove", "path": "/metadata/author"},
        ])
        assert result["errors"] == []
        assert "author" not in result["document"]["metadata"]

    def test_remove_array_element_shifts_left(self):
        result = apply_patches({"xs": [1, 2, 3]}, [{"op": "remove", "path": "/xs/0"}])
        assert result["document"]["xs"] == [2, 3]

    def test_remove_nonexistent_fails(self):
        result = apply_patches({}, [{"op": "remove", "path": "/missing"}])
        assert result["errors"][0].type == ErrorType.PATH_NOT_FOUND
        assert result["errors"][0].message == "remove failed: /missing does not exist"

    @pytest.mark.parametrize("index, ok", [("0", True), ("2", False), ("01", False), ("-", False)])
    def test_remove_by_index_is_positional(self, index, ok):
        result = apply_patches({"toys": ["string"]}, [
            {"op": "remove", "path": f"/toys/{index}"},
        ])
        assert (result["errors"] == []) is ok

    def test_remove_root_is_invalid(self):
        result = apply_patches({"a": 1}, [{"op": "remove", "path": ""}])
        assert result["errors"][0].type == ErrorType.INVALID_OPERATION
        assert result["document"] == {"a": 1}

    def test_replace_existing(self, populated_doc):
        result = apply_patches(populated_doc, [
            {"op": "replace", "path": "/metadata/title", "value": "Updated"},
        ])
        assert result["errors"] == []
        assert result["document"]["metadata"]["title"] == "Updated"

    def test_replace_keeps_key_order(self):
        result = apply_patches({"a": 1, "b": 2, "c": 3}, [
            {"op": "replace", "path": "/a", "value": 0},
        ])
        assert list(result["document"]) == ["a", "b", "c"]

    def test_replace_nonexistent_fails(self):
        result = apply_patches({}, [{"op": "replace", "path": "/missing", "value": "x"}])
        assert result["errors"][0].type == ErrorType.PATH_NOT_FOUND

    def test_move_operation(self, populated_doc):
        result = apply_patches(populated_doc, [
            {"op": "move", "from": "/metadata/author", "path": "/metadata/creator"},
        ])
        assert result["errors"] == []
        assert result["document"]["metadata"]["creator"] == "Bot"
        assert "author" not in result["document"]["metadata"]

    def test_move_within_array(self):
        result = apply_patches({"xs": ["a", "b", "c"]}, [
            {"op": "move", "from": "/xs/0", "path": "/xs/-"},
        ])
        assert result["document"]["xs"] == ["b", "c", "a"]

    def test_move_missing_from_fails(self, populated_doc):
        result = apply_patches(populated_doc, [
            {"op": "move", "from": "/metadata/foo", "path": "/metadata/title"},
        ])
        error = result["errors"][0]
        assert error.type == ErrorType.PATH_NOT_FOUND
        assert error.path == ["metadata", "foo"]
        assert result["document"]["metadata"]["title"] == "Test"

    def test_move_into_own_child_is_invalid(self):
        result = apply_patches({"a": {"b": 1}}, [
            {"op": "move", "from": "/a", "path": "/a/b/c"},
        ])
        assert result["errors"][0].type == ErrorType.INVALID_OPERATION
        assert result["document"] == {"a": {"b": 1}}

    def test_failed_move_puts_value_back(self):
        doc = {"a": 1, "b": 2, "c": 3}
        result = apply_patches(doc, [
            {"op": "move", "from": "/b", "path": "/missing/x"},
        ])
        assert result["errors"][0].type == ErrorType.PATH_NOT_FOUND
        assert list(result["document"].items()) == [("a", 1), ("b", 2), ("c", 3)]

    def test_copy_operation(self, populated_doc):
        result = apply_patches(populated_doc, [
            {"op": "copy", "from": "/metadata/title", "path": "/metadata/subtitle"},
        ])
        assert result["errors"] == []
        assert result["document"]["metadata"]["subtitle"] == "Test"
        assert result["document"]["metadata"]["title"] == "Test"  # original preserved

    def test_copy_does_not_alias_source(self):
        result = apply_patches({"a": {"x": 1}}, [
            {"op": "copy", "from": "/a", "path": "/b"},
            {"op": "replace", "path": "/b/x", "value": 2},
        ])
        assert result["document"] == {"a": {"x": 1}, "b": {"x": 2}}

    def test_copy_missing_from_fails(self):
        result = apply_patches({}, [{"op": "copy", "from": "/nope", "path": "/a"}])
        assert result["errors"][0].message == "copy failed: from=/nope does not exist"


# ======================================================================
# test operations
# ======================================================================
class TestTestOperations:
    """test ops are recorded as outcomes, never as errors."""

    def test_no_test_ops_gives_none(self, populated_doc):
        result = apply_patches(populated_doc, [
            {"op": "replace", "path": "/metadata/title", "value": "X"},
        ])
        assert result["test"] is None
        assert result["tests"] == []

    def test_passing_test(self, populated_doc):
        result = apply_patches(populated_doc, [
            {"op": "test", "path": "/metadata/title", "value": "Test"},
        ])
        assert result["test"] is True
        assert result["errors"] == []

    def test_failing_test_is_not_an_error(self, populated_doc):
        result = apply_patches(populated_doc, [
            {"op": "test", "path": "/metadata/title", "value": "Wrong"},
        ])
        assert result["test"] is False
        assert result["errors"] == []
        outcome = result["tests"][0]
        assert outcome.passed is False
        assert outcome.actual == "Test"
        assert outcome.expected == "Wrong"

    def test_test_on_missing_path_fails(self):
        result = apply_patches({}, [{"op": "test", "path": "/nope", "value": None}])
        assert result["test"] is False
        assert result["tests"][0].found is False

    def test_test_compares_structurally(self):
        result = apply_patches({"a": {"x": [1, 2.0]}}, [
            {"op": "test", "path": "/a", "value": {"x": [1.0, 2]}},
        ])
        assert result["test"] is True

    def test_test_does_not_equate_bool_and_number(self):
        result = apply_patches({"flag": True}, [
            {"op": "test", "path": "/flag", "value": 1},
        ])
        assert result["test"] is False

    def test_one_failure_makes_aggregate_false_but_later_ops_run(self):
        result = apply_patches({"a": 1}, [
            {"op": "test", "path": "/a", "value": 2},
            {"op": "add", "path": "/b", "value": 3},
            {"op": "test", "path": "/b", "value": 3},
        ])
        assert result["test"] is False
        assert [t.passed for t in result["tests"]] == [False, True]
        assert result["document"] == {"a": 1, "b": 3}

    def test_test_sees_earlier_operations(self):
        result = apply_patches({"a": 1}, [
            {"op": "replace", "path": "/a", "value": 5},
            {"op": "test", "path": "/a", "value": 5},
        ])
        assert result["test"] is True


# ======================================================================
# Sequencing and malformed input
# ======================================================================
class TestApplyPatchesSequence:
    """Ordering, apply-and-report, malformed operations."""

    def test_batch_of_operations(self):
        result = apply_patches({}, [
            {"op": "add", "path": "/name", "value": "Alice"},
            {"op": "add", "path": "/tags", "value": []},
            {"op": "add", "path": "/tags/-", "value": "engineer"},
            {"op": "move", "from": "/name", "path": "/tags/0"},
        ])
        assert result["errors"] == []
        assert result["document"] == {"tags": ["Alice", "engineer"]}

    def test_failed_op_is_skipped_and_rest_applied(self):
        result = apply_patches({"a": 1}, [
            {"op": "remove", "path": "/missing"},
            {"op": "add", "path": "/b", "value": 2},
        ])
        assert len(result["errors"]) == 1
        assert result["errors"][0].context["op_index"] == 0
        assert result["document"] == {"a": 1, "b": 2}

    def test_stop_on_error_skips_the_rest(self):
        result = apply_patches({"a": 1}, [
            {"op": "remove", "path": "/missing"},
            {"op": "add", "path": "/b", "value": 2},
        ], stop_on_error=True)
        assert result["document"] == {"a": 1}

    def test_stop_on_error_from_settings(self, monkeypatch):
        monkeypatch.setenv("PATCH_GATE_STOP_ON_PATCH_ERROR", "true")
        result = apply_patches({"a": 1}, [
            {"op": "remove", "path": "/missing"},
            {"op": "add", "path": "/b", "value": 2},
        ])
        assert result["document"] == {"a": 1}

    @pytest.mark.parametrize("op", [
        {"op": "add", "path": "/a"},
        {"op": "move", "path": "/a"},
        {"op": "add"},
        {"op": "frobnicate", "path": "/a"},
        "not an op",
        {"op": "add", "path": "no-slash", "value": 1},
    ])
    def test_malformed_operation_is_reported(self, op):
        result = apply_patches({}, [op])
        assert result["errors"][0].type == ErrorType.INVALID_OPERATION
        assert result["document"] == {}

    def test_missing_value_message(self):
        result = apply_patches({}, [{"op": "replace", "path": "/a"}])
        assert 'requires field "value"' in result["errors"][0].message

    def test_accepts_operation_models(self):
        op = PatchOperation.model_validate({"op": "add", "path": "/a", "value": 1})
        result = apply_patches({}, [op])
        assert result["document"] == {"a": 1}

    def test_added_values_do_not_alias_the_patch(self):
        value = {"x": [1]}
        result = apply_patches({}, [{"op": "add", "path": "/a", "value": value}])
        result["document"]["a"]["x"].append(2)
        assert value == {"x": [1]}

    def test_apply_operation_directly(self):
        op = PatchOperation(op="add", path="/k", value="v")
        assert PatchApplicator.apply_operation({}, op) == {"k": "v"}
