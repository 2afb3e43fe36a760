# tests/unit/runtime/test_stateful.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import asyncio

import pytest

from statekit.core.errors import DispatchError
from statekit.core.machine import Machine
from statekit.runtime.stateful import Stateful


class Cat(Stateful):
    fsm_states = {"initialState": "cool"}
    fsm_events = {
        "blerp": {"transition": {"cool": "herp"}, "after": "note"},
        "snooze": {"transition": {"cool": "nap.deep"}, "guard": "is_tired"},
    }

    def __init__(self, name="tom", **kwargs):
        self.name = name
        self.notes = []
        self.is_tired = False
        super().__init__(**kwargs)

    def note(self, *args):
        self.notes.append(args)


@pytest.fixture
def cat():
    return Cat()


def test_machine_target_is_the_includer(cat):
    assert isinstance(cat.fsm, Machine)
    assert cat.fsm.target.obj is cat


def test_current_state(cat):
    assert cat.fsm_current_state == "cool"


def test_initial_state_can_be_overridden():
    assert Cat(fsm_initial_state="herp").fsm_current_state == "herp"


def test_is_in_accessors(cat):
    assert cat.is_in_cool is True
    assert cat.is_in_herp is False
    assert cat.is_in_nap is False
    assert "is_in_nap_deep" in dir(cat)

    cat.fsm.override_state("nap.deep")
    assert cat.is_in_nap is True
    assert cat.is_in_cool is False


def test_unknown_attributes_still_raise(cat):
    with pytest.raises(AttributeError):
        cat.is_in_space
    assert not hasattr(cat, "read_guard")


def test_guards_read_host_attributes(cat):
    with pytest.raises(DispatchError):
        cat.fsm.transition_for("snooze")
    cat.is_tired = True
    assert cat.fsm.transition_for("snooze").to_state == "nap.deep"


@pytest.mark.asyncio
async def test_send_state_event_delegates_to_the_machine(cat):
    task = cat.send_state_event("blerp", "loudly")
    assert isinstance(task, asyncio.Task)
    assert cat.fsm_is_loading is True

    await task

    assert cat.fsm_current_state == "herp"
    assert cat.fsm_is_loading is False
    assert cat.notes == [("loudly",)]
