"""
Tests for structural change detection and policy-driven merging.
"""
from sitecache.cache.core import ConflictResolution, MergeConfig, MergeType
from sitecache.cache.diff import ROOT_PATH, detect_changes
from sitecache.cache.merge import identity_of, merge_values

LATEST = MergeConfig(MergeType.MERGE, ConflictResolution.LATEST)
OLDEST = MergeConfig(MergeType.MERGE, ConflictResolution.OLDEST)
REPLACE = MergeConfig(MergeType.REPLACE, ConflictResolution.LATEST)
APPEND = MergeConfig(MergeType.APPEND, ConflictResolution.LATEST)


# =============================================================================
# Change detection
# =============================================================================

class TestDetectChanges:
    """Tests for the structural diff."""

    def test_identical_values_have_no_changes(self):
        value = {"repos": [{"id": 1, "stars": 5}], "total": 1}
        result = detect_changes(value, value)
        assert not result.has_changes
        assert result.changed_fields == []

    def test_changed_scalar(self):
        result = detect_changes({"a": 1, "b": "x"}, {"a": 2, "b": "x"})
        assert result.changed_fields == ["a"]
        assert result.added_fields == []
        assert result.removed_fields == []

    def test_added_and_removed_fields(self):
        result = detect_changes({"a": 1, "old": True}, {"a": 1, "new": True})
        assert result.added_fields == ["new"]
        assert result.removed_fields == ["old"]
        assert result.changed_fields == ["old", "new"]

    def test_nested_paths_use_dots(self):
        result = detect_changes(
            {"repo": {"owner": {"login": "a"}}},
            {"repo": {"owner": {"login": "b"}}},
        )
        assert result.changed_fields == ["repo.owner.login"]

    def test_array_indices_are_path_segments(self):
        result = detect_changes({"tags": ["a", "b"]}, {"tags": ["a", "c", "d"]})
        assert result.changed_fields == ["tags.1", "tags.2"]
        assert result.added_fields == ["tags.2"]

    def test_added_subtree_reports_leaves(self):
        result = detect_changes({}, {"meta": {"title": "t", "tags": ["x"]}})
        assert result.added_fields == ["meta.title", "meta.tags.0"]

    def test_null_and_absent_are_equal(self):
        assert not detect_changes({"a": None}, {}).has_changes
        assert not detect_changes({}, {"a": None}).has_changes

    def test_missing_stored_value_is_empty_object(self):
        result = detect_changes(None, {"a": 1})
        assert result.added_fields == ["a"]

    def test_type_change_reports_node_path(self):
        result = detect_changes({"a": {"b": 1}}, {"a": [1]})
        assert result.changed_fields == ["a"]
        assert result.added_fields == []

    def test_root_type_change(self):
        assert detect_changes([1], {"a": 1}).changed_fields == [ROOT_PATH]

    def test_int_and_float_compare_numerically(self):
        assert not detect_changes({"n": 1}, {"n": 1.0}).has_changes

    def test_bool_is_not_a_number(self):
        assert detect_changes({"flag": 1}, {"flag": True}).changed_fields == ["flag"]


# =============================================================================
# Merging
# =============================================================================

class TestMergeValues:
    """Tests for the merge engine."""

    def test_replace_returns_candidate(self):
        assert merge_values({"a": 1, "b": 2}, {"a": 3}, REPLACE) == {"a": 3}

    def test_latest_wins_scalar_conflicts(self):
        merged = merge_values({"a": 1, "keep": "x"}, {"a": 2, "b": 3}, LATEST)
        assert merged == {"a": 2, "keep": "x", "b": 3}

    def test_oldest_keeps_stored_scalars(self):
        merged = merge_values({"a": 1}, {"a": 2, "b": 3}, OLDEST)
        assert merged == {"a": 1, "b": 3}

    def test_nested_objects_merge_recursively(self):
        merged = merge_values(
            {"stats": {"stars": 1, "forks": 2}},
            {"stats": {"stars": 5, "watchers": 9}},
            LATEST,
        )
        assert merged == {"stats": {"stars": 5, "forks": 2, "watchers": 9}}

    def test_lists_concatenate_without_duplicates(self):
        assert merge_values(["a", "b"], ["b", "c"], LATEST) == ["a", "b", "c"]

    def test_list_elements_matched_by_id(self):
        merged = merge_values(
            [{"id": 1, "stars": 1}, {"id": 2, "stars": 2}],
            [{"id": 2, "stars": 20}, {"id": 3, "stars": 3}],
            LATEST,
        )
        assert merged == [
            {"id": 1, "stars": 1},
            {"id": 2, "stars": 20},
            {"id": 3, "stars": 3},
        ]

    def test_list_elements_matched_by_full_name(self):
        merged = merge_values(
            [{"full_name": "o/r", "topics": ["a"]}],
            [{"full_name": "o/r", "topics": ["b"]}],
            LATEST,
        )
        assert merged == [{"full_name": "o/r", "topics": ["a", "b"]}]

    def test_null_candidate_field_keeps_stored(self):
        assert merge_values({"a": 1}, {"a": None}, LATEST) == {"a": 1}

    def test_incompatible_shapes_fall_back_to_replace(self):
        assert merge_values({"a": 1}, [1, 2], LATEST) == [1, 2]
        assert merge_values({"a": {"b": 1}}, {"a": "flat"}, OLDEST) == {"a": "flat"}

    def test_inputs_are_not_mutated(self):
        stored = {"list": [{"id": 1, "v": 1}]}
        candidate = {"list": [{"id": 1, "v": 2}]}
        merge_values(stored, candidate, LATEST)
        assert stored == {"list": [{"id": 1, "v": 1}]}
        assert candidate == {"list": [{"id": 1, "v": 2}]}

    def test_default_config_is_merge_latest(self):
        assert merge_values({"a": 1}, {"a": 2, "b": 3}) == {"a": 2, "b": 3}

    def test_merge_latest_is_idempotent(self):
        stored = {"repos": [{"id": 1, "stars": 1}, "plain"], "total": 1}
        candidate = {"repos": [{"id": 1, "stars": 2}, {"id": 2}, "plain"], "total": 2}
        once = merge_values(stored, candidate, LATEST)
        twice = merge_values(once, candidate, LATEST)
        assert twice == once
        assert not detect_changes(once, twice).has_changes

    def test_append_keeps_duplicates(self):
        assert merge_values([1, 2], [2, 3], APPEND) == [1, 2, 2, 3]

    def test_append_non_lists_replaces(self):
        assert merge_values({"a": 1}, {"b": 2}, APPEND) == {"b": 2}
        assert merge_values([1], {"b": 2}, APPEND) == {"b": 2}

    def test_append_does_not_mutate_inputs(self):
        stored, candidate = [{"id": 1}], [{"id": 2}]
        merged = merge_values(stored, candidate, APPEND)
        merged[0]["id"] = 99
        assert stored == [{"id": 1}]
        assert candidate == [{"id": 2}]


class TestIdentity:

    def test_identity_field_priority(self):
        assert identity_of({"name": "n", "id": 7}) == ("id", 7)
        assert identity_of({"slug": "post"}) == ("slug", "post")

    def test_no_identity(self):
        assert identity_of({"title": "x"}) is None
        assert identity_of("scalar") is None
