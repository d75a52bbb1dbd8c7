from __future__ import annotations

import pytest

from common import codec
from common.codec import MARKER_KEY, check_serializable
from common.errors import NotSerializableError


def test_encode_special_values():
    assert codec.encode(None) == {MARKER_KEY: "nil"}
    assert codec.encode({}) == {MARKER_KEY: "empty_table"}
    assert codec.encode([]) == {MARKER_KEY: "empty_list"}
    assert codec.encode("x") == "x"
    assert codec.encode(3.5) == 3.5
    assert codec.encode(False) is False


def test_encode_nested():
    value = {"a": {"b": {"c": None, "d": {}}}, "e": [None, [], 1]}
    assert codec.encode(value) == {
        "a": {"b": {"c": {MARKER_KEY: "nil"}, "d": {MARKER_KEY: "empty_table"}}},
        "e": [{MARKER_KEY: "nil"}, {MARKER_KEY: "empty_list"}, 1],
    }


@pytest.mark.parametrize(
    "value",
    [
        None,
        {},
        [],
        {"a": {"nested": {}}, "b": None, "c": 42, "d": True, "e": "hello"},
        {"l1": {"l2": {"l3": {"l4": None, "empty": {}, "list": [], "n": -1.25}}}},
        {"mixed": [{"x": None}, [[], {}], "s", 0, False]},
    ],
)
def test_decode_inverts_encode(value):
    assert codec.decode(codec.encode(value)) == value


def test_tuples_come_back_as_lists():
    assert codec.decode(codec.encode({"t": (1, None, ())})) == {"t": [1, None, []]}


def test_decode_node_is_shallow():
    inner = {"k": {MARKER_KEY: "nil"}}
    assert codec.decode_node(inner) is inner
    assert codec.decode_node({MARKER_KEY: "empty_table"}) == {}


def test_unknown_marker_value_is_plain_data():
    value = {MARKER_KEY: "something-else"}
    assert not codec.is_placeholder(value)
    assert codec.decode(value) == value


def test_check_serializable_accepts_tree_values():
    check_serializable({"a": [1, 2.5, True, None, "s", {"b": {}}], "t": (1,)})


@pytest.mark.parametrize(
    "value",
    [
        lambda: None,
        object(),
        {"a": {"b": {1, 2}}},
        {"a": {1: "numeric key"}},
        {"a": [b"bytes"]},
        {"a": {MARKER_KEY: "nil"}},
    ],
)
def test_check_serializable_rejects(value):
    with pytest.raises(NotSerializableError):
        check_serializable(value)


def test_check_serializable_reports_nesting():
    with pytest.raises(NotSerializableError) as ei:
        check_serializable({"outer": {"inner": print}})
    assert ei.value.reason == "Value error: Value error: Cannot serialize builtin_function_or_method values"


def test_check_serializable_rejects_cycles():
    cyclic: dict = {}
    cyclic["self"] = cyclic
    with pytest.raises(NotSerializableError):
        check_serializable(cyclic)


def test_shared_subtrees_are_not_cycles():
    shared = {"x": 1}
    check_serializable({"a": shared, "b": shared})


@pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan"), {"a": [1.0, float("nan")]}])
def test_check_serializable_rejects_non_finite_floats(value):
    with pytest.raises(NotSerializableError):
        check_serializable(value)


@pytest.mark.parametrize("value", ["\ud800", {"a": {"b": "x\udcff"}}, {"a": {"\ud800": 1}}, ["ok", "\udfff"]])
def test_check_serializable_rejects_lone_surrogates(value):
    with pytest.raises(NotSerializableError):
        check_serializable(value)


def test_check_serializable_accepts_non_ascii_text():
    check_serializable({"clé": "ünïcode ✓ 🔐", "n": 1e300})
