"""Unit tests for provider/schema.py"""

import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from provider.schema import (
    TYPE_BOOL,
    TYPE_INT,
    TYPE_LIST,
    TYPE_MAP,
    TYPE_SET,
    TYPE_STRING,
    UNKNOWN,
    ResourceData,
    Schema,
    contains_unknown,
    diff,
    int_between,
    normalize_config,
    string_in_slice,
    valid_arn,
    valid_json,
    validate_config,
    values_equal,
)

SCHEMA = {
    "arn": Schema(TYPE_STRING, computed=True),
    "name": Schema(TYPE_STRING, required=True, force_new=True),
    "count": Schema(TYPE_INT, optional=True, default=1, validate=int_between(1, 5)),
    "enabled": Schema(TYPE_BOOL, optional=True),
    "mode": Schema(TYPE_STRING, optional=True, validate=string_in_slice(["A", "B"])),
    "tags": Schema(TYPE_MAP, optional=True, elem=Schema(TYPE_STRING)),
    "items": Schema(TYPE_LIST, optional=True, elem=Schema(TYPE_STRING)),
    "block": Schema(
        TYPE_LIST,
        optional=True,
        max_items=2,
        elem={
            "key": Schema(TYPE_STRING, required=True),
            "order": Schema(TYPE_INT, optional=True, computed=True),
        },
    ),
    "stores": Schema(
        TYPE_SET,
        optional=True,
        elem={"location": Schema(TYPE_STRING, required=True)},
    ),
}


class TestUnknown(unittest.TestCase):
    def test_singleton(self):
        from copy import deepcopy

        self.assertIs(deepcopy(UNKNOWN), UNKNOWN)

    def test_contains_unknown(self):
        self.assertTrue(contains_unknown({"a": [1, {"b": UNKNOWN}]}))
        self.assertFalse(contains_unknown({"a": [1, {"b": "x"}]}))


class TestNormalize(unittest.TestCase):
    def test_coercion_and_defaults(self):
        cfg = normalize_config(
            SCHEMA,
            {"name": 12, "enabled": "true", "tags": {"n": 1}, "block": {"key": "k", "order": "3"}},
        )
        self.assertEqual(cfg["name"], "12")
        self.assertIs(cfg["enabled"], True)
        self.assertEqual(cfg["count"], 1)
        self.assertEqual(cfg["tags"], {"n": "1"})
        # a single block dict becomes a one-element list
        self.assertEqual(cfg["block"], [{"key": "k", "order": 3}])
        self.assertNotIn("mode", cfg)

    def test_unknown_kept(self):
        cfg = normalize_config(SCHEMA, {"name": UNKNOWN})
        self.assertIs(cfg["name"], UNKNOWN)


class TestValidate(unittest.TestCase):
    def test_valid(self):
        self.assertEqual(validate_config(SCHEMA, normalize_config(SCHEMA, {"name": "x"})), [])

    def test_problems(self):
        problems = validate_config(
            SCHEMA,
            {
                "arn": "arn:aws:s3:::b",
                "count": 9,
                "mode": "C",
                "bogus": 1,
                "block": [{"key": "a"}, {"key": "b"}, {}],
            },
        )
        text = "\n".join(problems)
        self.assertIn("bogus: unsupported argument", text)
        self.assertIn("name: required argument is missing", text)
        self.assertIn("arn: can't configure a value", text)
        self.assertIn("count: expected to be in the range (1 - 5), got 9", text)
        self.assertIn("mode: expected one of [A, B]", text)
        self.assertIn("block: no more than 2 item(s)", text)
        self.assertIn("block.2.key: required argument is missing", text)

    def test_type_mismatch(self):
        problems = validate_config(SCHEMA, {"name": "x", "items": "notalist"})
        self.assertEqual(problems, ["items: expected list, got str"])

    def test_unknown_skips_validation(self):
        self.assertEqual(validate_config(SCHEMA, {"name": "x", "mode": UNKNOWN}), [])

    def test_validators(self):
        self.assertEqual(valid_arn("arn:aws:iam::123456789012:role/r", "k"), [])
        self.assertEqual(len(valid_arn("not-an-arn", "k")), 1)
        self.assertEqual(valid_json('{"a": 1}', "k"), [])
        self.assertEqual(len(valid_json("{", "k")), 1)


class TestResourceData(unittest.TestCase):
    def test_precedence(self):
        d = ResourceData(
            SCHEMA,
            config={"name": "new"},
            state={"name": "old", "arn": "arn:aws:s3:::old", "id": "old"},
        )
        self.assertEqual(d.id, "old")
        self.assertEqual(d.get("name"), "new")
        # computed values come from state when not configured
        self.assertEqual(d.get("arn"), "arn:aws:s3:::old")
        d.set("name", "set")
        self.assertEqual(d.get("name"), "set")

    def test_zero_values_and_paths(self):
        d = ResourceData(SCHEMA, config={"name": "x", "block": [{"key": "k"}]})
        self.assertEqual(d.get("tags"), {})
        self.assertEqual(d.get("block.0.key"), "k")
        self.assertIsNone(d.get("block.3.key"))
        self.assertEqual(d.get_ok("mode"), ("", False))

    def test_changes(self):
        d = ResourceData(SCHEMA, config={"name": "x", "tags": {"a": "1"}}, state={"name": "x"})
        self.assertTrue(d.has_change("tags"))
        self.assertFalse(d.has_change("name"))
        self.assertEqual(d.get_change("tags"), ({}, {"a": "1"}))

    def test_set_unknown_key(self):
        d = ResourceData(SCHEMA)
        with self.assertRaises(KeyError):
            d.set("nope", 1)

    def test_state_includes_id(self):
        d = ResourceData(SCHEMA, config={"name": "x"})
        d.set_id("abc")
        state = d.state()
        self.assertEqual(state["id"], "abc")
        self.assertEqual(state["name"], "x")


class TestDiff(unittest.TestCase):
    def test_force_new(self):
        changed, force_new = diff(SCHEMA, {"name": "a"}, {"name": "b"})
        self.assertEqual(changed, ["name"])
        self.assertEqual(force_new, ["name"])

    def test_computed_nested_carried_over(self):
        old = {"name": "a", "block": [{"key": "k", "order": 1}]}
        new = {"name": "a", "block": [{"key": "k"}]}
        self.assertEqual(diff(SCHEMA, old, new), ([], []))

    def test_set_order_ignored(self):
        s = SCHEMA["stores"]
        self.assertTrue(
            values_equal(s, [{"location": "a"}, {"location": "b"}], [{"location": "b"}, {"location": "a"}])
        )

    def test_unknown_is_a_change(self):
        changed, _ = diff(SCHEMA, {"name": "a", "mode": "A"}, {"name": "a", "mode": UNKNOWN})
        self.assertEqual(changed, ["mode"])

    def test_diff_suppress(self):
        schema = {"doc": Schema(TYPE_STRING, required=True, diff_suppress=lambda k, o, n: True)}
        self.assertEqual(diff(schema, {"doc": "a"}, {"doc": "b"}), ([], []))


if __name__ == "__main__":
    unittest.main()
