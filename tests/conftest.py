# tests/conftest.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from statekit.core.machine import Machine


def _callback(name, result=None):
    def callback(self, *args):
        self.calls.append((name, args))
        return result

    callback.__name__ = name
    return callback


class Kitty:
    """A target whose callbacks record every call they receive."""

    wag_tail = _callback("wag_tail", "wagging")
    blink = _callback("blink", "blinking")
    purr = _callback("purr", "purring")
    stretch = _callback("stretch", "stretching")
    animate_smile = _callback("animate_smile", "i am smile very")
    play_purr = _callback("play_purr", "i am purr so many")
    became_okay = _callback("became_okay")
    stop_animations = _callback("stop_animations")

    def __init__(self, **overrides):
        self.calls = []
        for name, value in overrides.items():
            setattr(self, name, value)

    def called(self, name):
        return [args for called, args in self.calls if called == name]


def _kitty_spec():
    return {
        "states": {
            "initialState": "okay",
            "happy": {"didEnter": "animate_smile"},
            "sleeping": {"didExit": "stop_animations"},
        },
        "events": {
            "cuddle_kitty": {
                "before": ["wag_tail", "blink"],
                "after": ["purr", "stretch"],
                "transition": {"okay": "happy", "didEnter": "play_purr"},
            },
            "wake_kitty": {"transition": {"sleeping": "okay", "didEnter": "became_okay"}},
            "nap": {"transition": {"$all": "sleeping"}},
            "leave_kitty": {"transition": {"happy": "sad", "didEnter": "sulk"}},
        },
    }


def _basic_spec():
    return {
        "states": {"initialState": "inactive"},
        "events": {
            "run": {"transitions": {"$all": "active.running"}},
            "walk": {"transitions": {"$all": "active.walking"}},
            "trip": {
                "transitions": [
                    {"active.running": "injured", "doIf": "at_max_speed"},
                    {"active.running": "inactive"},
                ]
            },
            "reset": {"transition": {"$all": "inactive"}},
            "slow_down": {
                "transitions": [
                    {"active.running": "active.walking"},
                    {"active.walking": "inactive"},
                    {"inactive": "$same"},
                ]
            },
        },
    }


@pytest.fixture
def kitty():
    """A fresh recording target."""
    return Kitty()


@pytest.fixture
def make_kitty_machine():
    """Factory building a machine over the kitty spec, with target overrides."""

    def factory(initial_state=None, hooks=None, **overrides):
        spec = _kitty_spec()
        target = Kitty(**overrides)
        return Machine(spec["events"], spec["states"], target=target, initial_state=initial_state, hooks=hooks)

    return factory


@pytest.fixture
def runner():
    """Guard values for the basic machine."""
    return SimpleNamespace(at_max_speed=False)


@pytest.fixture
def basic_machine(runner):
    spec = _basic_spec()
    return Machine(spec["events"], spec["states"], target=runner)


@pytest.fixture
def dummy_hooks():
    """A list of mock hooks."""
    return [MagicMock(), MagicMock()]


@pytest.fixture
def kitty_spec():
    return _kitty_spec()


@pytest.fixture
def basic_spec():
    return _basic_spec()
