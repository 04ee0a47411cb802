"""Tests for the execution stage and value coercion."""
from __future__ import annotations

import pytest

from core.errors import SessionExpired
from scene_agent.executor import (
    ExecutionStage,
    coerce_bool,
    coerce_property_value,
    coerce_scale,
    normalize_vector3,
)
from scene_agent.models import MutationCall, MutationKind
from tests.test_helpers import FakeSceneHandle


def _call(**kwargs) -> MutationCall:
    return MutationCall.model_validate(kwargs)


class TestNormalizeVector3:
    def test_dict_with_missing_axes(self):
        assert normalize_vector3({"y": 2}) == {"x": 0.0, "y": 2.0, "z": 0.0}

    def test_list(self):
        assert normalize_vector3([1, "2", 3.5]) == {"x": 1.0, "y": 2.0, "z": 3.5}

    def test_comma_string(self):
        assert normalize_vector3("1, 2, -3") == {"x": 1.0, "y": 2.0, "z": -3.0}

    def test_wrong_length_rejected(self):
        with pytest.raises(ValueError):
            normalize_vector3("1,2")
        with pytest.raises(ValueError):
            normalize_vector3([1, 2, 3, 4])

    def test_non_numeric_rejected(self):
        with pytest.raises(ValueError):
            normalize_vector3("a,b,c")

    def test_scalar_rejected(self):
        with pytest.raises(ValueError):
            normalize_vector3(5)


class TestCoerceScale:
    def test_scalar_is_uniform(self):
        assert coerce_scale(2) == {"x": 2.0, "y": 2.0, "z": 2.0}
        assert coerce_scale("1.5") == {"x": 1.5, "y": 1.5, "z": 1.5}

    def test_missing_axes_default_to_one(self):
        assert coerce_scale({"x": 3}) == {"x": 3.0, "y": 1.0, "z": 1.0}

    def test_triple_string(self):
        assert coerce_scale("1,2,3") == {"x": 1.0, "y": 2.0, "z": 3.0}


class TestCoerceBool:
    @pytest.mark.parametrize("value", ["false", "0", "no", "off", "", False, 0])
    def test_falsy(self, value):
        assert coerce_bool(value) is False

    @pytest.mark.parametrize("value", ["true", "1", "yes", "on", True, 1])
    def test_truthy(self, value):
        assert coerce_bool(value) is True

    def test_none_uses_default(self):
        assert coerce_bool(None, default=False) is False


def test_unknown_property_rejected():
    with pytest.raises(ValueError, match="Cannot set property"):
        coerce_property_value("color", "#fff")


@pytest.mark.asyncio
async def test_apply_failure_does_not_abort_batch():
    handle = FakeSceneHandle(objects=["Cube"])
    stage = ExecutionStage(handle, interval=0)

    outcomes = await stage.apply([
        _call(kind="set_property", target="Missing", property="position", value={"x": 1}),
        _call(kind="set_property", target="Cube", property="position", value="0,2,0"),
    ])

    assert [o.success for o in outcomes] == [False, True]
    assert "Missing" in outcomes[0].error
    assert handle.objects["Cube"]["position"] == {"x": 0.0, "y": 2.0, "z": 0.0}


@pytest.mark.asyncio
async def test_apply_records_invalid_values_and_unknown_properties():
    handle = FakeSceneHandle(objects=["Cube"])
    stage = ExecutionStage(handle, interval=0)

    outcomes = await stage.apply([
        _call(kind="set_property", target="Cube", property="position", value="1,2"),
        _call(kind="set_property", target="Cube", property="color", value="red"),
        _call(kind="set_property", target="Cube", property="Visible", value="false"),
    ])

    assert [o.success for o in outcomes] == [False, False, True]
    assert handle.objects["Cube"]["visible"] is False


@pytest.mark.asyncio
async def test_apply_handles_variables_and_events():
    handle = FakeSceneHandle()
    stage = ExecutionStage(handle, interval=0)

    outcomes = await stage.apply([
        _call(action="setVariable", variable="buttonColor", value="#4A90E2"),
        _call(kind="emit_event", target="mouseDown", value={"object": "Button"}),
    ])

    assert all(o.success for o in outcomes)
    assert handle.variables == {"buttonColor": "#4A90E2"}
    assert handle.events == [("mouseDown", {"object": "Button"})]


@pytest.mark.asyncio
async def test_apply_records_scene_operation_errors():
    handle = FakeSceneHandle(objects=["Cube", "Sphere"])
    handle.fail_set_property.add("Cube")
    stage = ExecutionStage(handle, interval=0)

    outcomes = await stage.apply([
        _call(kind="set_property", target="Cube", property="scale", value=2),
        _call(kind="set_property", target="Sphere", property="scale", value=2),
    ])

    assert [o.success for o in outcomes] == [False, True]


@pytest.mark.asyncio
async def test_apply_propagates_session_expiry():
    handle = FakeSceneHandle()
    handle.closed = True
    stage = ExecutionStage(handle, interval=0)

    with pytest.raises(SessionExpired):
        await stage.apply([_call(kind="set_variable", target="x", value=1)])


@pytest.mark.asyncio
async def test_apply_is_sequential_in_order():
    handle = FakeSceneHandle(objects=["A", "B"])
    stage = ExecutionStage(handle, interval=0)

    await stage.apply([
        _call(kind="set_property", target="B", property="rotation", value=[0, 90, 0]),
        _call(kind="set_property", target="A", property="rotation", value=[0, 45, 0]),
    ])

    assert [c[1] for c in handle.calls] == ["B", "A"]


def test_mutation_kind_aliases():
    call = _call(action="setObjectProperty", object="Cube", property="position", value="1,2,3")
    assert call.kind is MutationKind.SET_PROPERTY
    assert call.target == "Cube"
