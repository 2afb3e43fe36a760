# tests/unit/core/test_definition.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import pytest
from hypothesis import given
from hypothesis import strategies as st

from statekit.core.definition import (
    ERROR_EVENT,
    FAILED_STATE,
    INITIAL_STATE_NAME,
    Definition,
    TransitionRecord,
    compile_definition,
)
from statekit.core.errors import DefinitionError, EventNotFoundError, StateNotFoundError

# -----------------------------------------------------------------------------
# INSTANTIATION
# -----------------------------------------------------------------------------


def test_requires_events():
    with pytest.raises(DefinitionError):
        Definition({"states": {}})


@pytest.mark.parametrize("spec", [{"events": True}, {"events": ["run"]}, "events"])
def test_requires_events_to_be_a_mapping(spec):
    with pytest.raises(DefinitionError):
        Definition(spec)


def test_requires_states_to_be_a_mapping():
    with pytest.raises(DefinitionError):
        Definition({"events": {"poke": {"transition": {"initialized": "annoyed"}}}, "states": True})


def test_requires_at_least_one_event():
    with pytest.raises(DefinitionError, match="at least one"):
        Definition({"events": {}})


def test_initial_state_defaults():
    definition = Definition({"events": {"poke": {"transitions": [{"initialized": "annoyed"}]}}})
    assert definition.initial_state == INITIAL_STATE_NAME == "initialized"


@pytest.mark.parametrize("key", ["initialState", "initial_state"])
def test_initial_state_aliases(key):
    definition = Definition({"states": {key: "off"}, "events": {"run": {"transition": {"off": "on"}}}})
    assert definition.initial_state == "off"


def test_implicit_states_include_the_initial_state():
    definition = Definition({"events": {"amaze": {"transition": {"initialized": "x"}}}})
    assert definition.state_names == ["initialized", "x"]
    assert not definition.is_explicit


# -----------------------------------------------------------------------------
# EXPLICIT STATES
# -----------------------------------------------------------------------------


def test_explicit_states_reject_unlisted_states():
    with pytest.raises(DefinitionError, match="not a defined state"):
        Definition(
            {
                "states": {"knownStates": ["initialized", "farting"]},
                "events": {
                    "fart": {"transitions": {"initialized": "farting"}},
                    "shart": {"transitions": {"farting": "soiled"}},
                },
            }
        )


def test_explicit_states_must_list_the_initial_state():
    with pytest.raises(DefinitionError, match="not a defined state"):
        Definition({"states": {"explicitStates": ["a", "b"]}, "events": {"go": {"transition": {"a": "b"}}}})


def test_explicit_states_must_be_used():
    with pytest.raises(DefinitionError, match="is not used"):
        Definition(
            {
                "states": {"initialState": "wiggling", "explicitStates": ["wiggling", "wobbling", "farting"]},
                "events": {"wiggle": {"transitions": [{"wiggling": "wobbling"}]}},
            }
        )


def test_explicit_states_keep_their_order():
    definition = Definition(
        {
            "states": {"initial_state": "b", "known_states": ["a", "b"]},
            "events": {"go": {"transition": {"b": "a"}}},
        }
    )
    assert definition.is_explicit
    assert definition.state_names == ["a", "b"]


# -----------------------------------------------------------------------------
# COMPILING TRANSITIONS
# -----------------------------------------------------------------------------


def test_transition_aliases_transitions():
    definition = Definition({"events": {"amaze": {"transition": {"initialized": "x"}}}})
    assert len(definition.transitions_for("amaze")) == 1


def test_transition_and_transitions_are_exclusive():
    with pytest.raises(DefinitionError):
        Definition(
            {"events": {"amaze": {"transition": {"initialized": "x"}, "transitions": [{"x": "initialized"}]}}}
        )


def test_event_without_transitions_is_rejected():
    with pytest.raises(DefinitionError, match="at least one transition"):
        Definition({"events": {"amaze": {"before": "x"}}})


def test_all_expands_to_every_known_state():
    definition = Definition(
        {
            "states": {"initialState": "a"},
            "events": {
                "reset": {"transitions": {"$all": "a"}},
                "fobble": {"transitions": {"a": "x"}},
                "doggle": {"transitions": {"a": "y"}},
                "wobble": {"transitions": {"a": "z"}},
            },
        }
    )

    for from_state in ("a", "x", "y", "z"):
        transitions = definition.transitions_for("reset", from_state)
        assert len(transitions) == 1
        assert transitions[0].from_state == from_state
        assert transitions[0].to_state == "a"


def test_same_is_replaced_by_the_from_state():
    definition = Definition({"events": {"to_a": {"transitions": [{"initialized": "a"}, {"a": "$same"}]}}})
    transitions = definition.transitions_for("to_a", "a")
    assert len(transitions) == 1
    assert transitions[0].to_state == "a"


def test_misplaced_macros_are_rejected():
    with pytest.raises(DefinitionError):
        Definition({"events": {"go": {"transition": {"a": "$all"}}}})
    with pytest.raises(DefinitionError):
        Definition({"events": {"go": {"transition": {"from": "$same", "to": "a"}}}})


def test_multiple_guarded_transitions_share_a_from_state():
    definition = Definition(
        {
            "states": {"initialState": "off"},
            "events": {
                "run": {
                    "transitions": [
                        {"on": "$same"},
                        {"off": "on", "unless": "is_warm"},
                        {"off": "on", "guard": "has_power"},
                    ]
                }
            },
        }
    )

    transitions = definition.transitions_for("run", "off")
    assert len(transitions) == 2
    assert all(t.is_guarded for t in transitions)
    assert [t.do_unless for t in transitions] == ["is_warm", None]
    assert [t.do_if for t in transitions] == [None, "has_power"]


def test_one_mapping_per_transition_object():
    with pytest.raises(DefinitionError, match=r"only one .+ per object"):
        Definition(
            {
                "events": {
                    "pedal": {
                        "transitions": {
                            "initialized": "mounting",
                            "mounting": "moving.slowly",
                            "moving.slowly": "moving.quickly",
                            "moving.quickly": "$same",
                        }
                    }
                }
            }
        )


def test_unguarded_duplicates_are_ambiguous():
    with pytest.raises(DefinitionError, match="more than one"):
        Definition(
            {
                "states": {"initialState": "off"},
                "events": {"run": {"transitions": [{"on": "$same"}, {"off": "on"}, {"off": "on"}]}},
            }
        )


def test_unguarded_duplicates_through_all_are_ambiguous():
    with pytest.raises(DefinitionError, match="more than one"):
        Definition(
            {
                "states": {"initialState": "off"},
                "events": {"run": {"transitions": [{"on": "$same"}, {"off": "on"}, {"$all": "on"}]}},
            }
        )


# -----------------------------------------------------------------------------
# UNWOUND TRANSITIONS
# -----------------------------------------------------------------------------


def _build(transitions):
    return Definition({"states": {"initialState": "a"}, "events": {"run": {"transitions": transitions}}}).transitions_for(
        "run"
    )


def test_callback_properties_become_tuples():
    t = _build(
        [
            {"a": "b", "before": "do_ting"},
            {"d": "e", "willEnter": "do_ting"},
            {"f": "g", "didEnter": "do_ting"},
            {"h": "i", "willExit": "do_ting"},
            {"j": "k", "didExit": "do_ting"},
            {"b": "c", "after": "do_ting"},
        ]
    )

    assert t[0].before_event == ("do_ting",)
    assert t[1].will_enter == ("do_ting",)
    assert t[2].did_enter == ("do_ting",)
    assert t[3].will_exit == ("do_ting",)
    assert t[4].did_exit == ("do_ting",)
    assert t[5].after_event == ("do_ting",)
    assert t[0].after_event == ()


def test_snake_case_keys_are_accepted():
    t = _build([{"from": "a", "to": "b", "before_event": ["x", "y"], "did_enter": "z", "do_unless": "w"}])
    assert t[0].before_event == ("x", "y")
    assert t[0].did_enter == ("z",)
    assert t[0].do_unless == "w"


def test_guards_pass_through():
    t = _build([{"a": "b", "guard": "has_ting"}, {"b": "c", "unless": "has_ting"}])
    assert t[0].do_if == "has_ting"
    assert t[1].do_unless == "has_ting"


def test_named_from_and_to():
    t = _build({"from": "a", "to": "b"})
    assert (t[0].from_state, t[0].to_state) == ("a", "b")


def test_from_list_fans_out_in_order():
    t = _build({"from": ["a", "b"], "to": "c"})
    assert [(r.from_state, r.to_state) for r in t] == [("a", "c"), ("b", "c")]


def test_from_without_to_is_rejected():
    with pytest.raises(DefinitionError):
        _build({"from": "a"})


def test_event_level_options_apply_to_every_transition():
    definition = Definition(
        {
            "states": {"initialState": "a"},
            "events": {
                "run": {
                    "before": "prepare",
                    "guard": "ready",
                    "transitions": [{"a": "b", "before": "warm_up"}, {"b": "c", "unless": "tired"}],
                }
            },
        }
    )
    first, second = definition.transitions_for("run")
    assert first.before_event == ("prepare", "warm_up")
    assert first.do_if == "ready"
    assert second.before_event == ("prepare",)
    assert second.do_if is None
    assert second.do_unless == "tired"


def test_inline_callables_are_kept():
    def inline(*args):
        return "inline"

    t = _build({"a": "b", "didEnter": [inline, "named"]})
    assert t[0].did_enter == (inline, "named")


def test_record_callbacks_rejects_unknown_phases():
    record = TransitionRecord(event="run", from_state="a", to_state="b")
    assert not record.is_guarded
    with pytest.raises(ValueError):
        record.callbacks("did_explode")


# -----------------------------------------------------------------------------
# STATE HOOKS
# -----------------------------------------------------------------------------


def test_state_hooks_are_attached_to_descriptors():
    definition = Definition(
        {
            "states": {"initialState": "okay", "happy": {"didEnter": "animate_smile", "will_exit": ["a", "b"]}},
            "events": {"cuddle": {"transition": {"okay": "happy"}}},
        }
    )
    happy = definition.lookup_state("happy")
    assert happy.did_enter == ("animate_smile",)
    assert happy.will_exit == ("a", "b")
    assert happy.callbacks("did_enter") == ("animate_smile",)
    assert happy.callbacks("before_event") == ()


def test_state_hooks_for_unused_states_are_rejected():
    with pytest.raises(DefinitionError, match="not used"):
        Definition({"states": {"ghost": {"didEnter": "boo"}}, "events": {"go": {"transition": {"initialized": "a"}}}})


def test_unknown_state_hooks_are_rejected():
    with pytest.raises(DefinitionError, match="unknown hooks"):
        Definition({"states": {"a": {"didExplode": "boom"}}, "events": {"go": {"transition": {"initialized": "a"}}}})


def test_unknown_state_options_are_rejected():
    with pytest.raises(DefinitionError, match="unknown states option"):
        Definition({"states": {"initialStat": "a"}, "events": {"go": {"transition": {"initialized": "a"}}}})


def test_state_descriptors_know_adjacent_transitions():
    definition = Definition({"events": {"one": {"transition": {"initialized": "a"}}, "two": {"transition": {"a": "b"}}}})
    a = definition.lookup_state("a")
    assert [t.event for t in a.exit_transitions] == ["two"]
    assert [t.event for t in a.enter_transitions] == ["one"]


# -----------------------------------------------------------------------------
# PUBLIC API
# -----------------------------------------------------------------------------


@pytest.fixture
def two_step():
    return Definition({"events": {"one": {"transitions": {"initialized": "a"}}, "two": {"transitions": {"a": "b"}}}})


def test_event_and_state_names(two_step):
    assert two_step.event_names == ["one", "two"]
    assert [event.name for event in two_step.events] == ["one", "two"]
    assert two_step.state_names == ["initialized", "a", "b"]
    assert [state.name for state in two_step.states] == ["initialized", "a", "b"]


def test_lookups(two_step):
    assert two_step.has_state("a")
    assert not two_step.has_state("z")
    assert two_step.has_event("one")
    assert not two_step.has_event("three")
    assert two_step.lookup_state("a").name == "a"
    assert two_step.lookup_event("one").name == "one"
    assert len(two_step.lookup_event("one").transitions) == 1
    with pytest.raises(StateNotFoundError):
        two_step.lookup_state("z")
    with pytest.raises(EventNotFoundError):
        two_step.lookup_event("three")


def test_transitions_for(two_step):
    assert len(two_step.transitions_for("one")) == 1
    assert len(two_step.transitions_for("one", "initialized")) == 1
    assert two_step.transitions_for("one", "b") == []
    assert two_step.transitions_for("missing") == []


def test_queries_do_not_mutate(two_step):
    first = two_step.transitions_for("one")
    first.clear()
    assert len(two_step.transitions_for("one")) == 1
    names = two_step.state_names
    names.append("z")
    assert "z" not in two_step.state_names


def test_namespaces_and_flags():
    definition = Definition(
        {
            "states": {"initialState": "inactive"},
            "events": {"run": {"transition": {"$all": "active.running"}}, "walk": {"transition": {"$all": "active.walking"}}},
        }
    )
    assert definition.state_namespaces == ["active"]
    assert definition.lookup_states("active") == [
        definition.lookup_state("active.running"),
        definition.lookup_state("active.walking"),
    ]
    assert definition.state_flag_names == {
        "is_in_active": "active",
        "is_in_inactive": "inactive",
        "is_in_active_running": "active.running",
        "is_in_active_walking": "active.walking",
    }
    with pytest.raises(StateNotFoundError, match="no states or substates"):
        definition.lookup_states("act")


def test_colliding_flag_names_are_rejected():
    with pytest.raises(DefinitionError, match="is_in_a_b"):
        Definition({"events": {"go": {"transitions": [{"initialized": "a.b"}, {"a.b": "a_b"}]}}})


@given(st.lists(st.sampled_from(["a", "b", "c", "d"]), min_size=1, max_size=6, unique=True))
def test_namespaces_are_prefixes_of_state_names(segments):
    state = ".".join(segments)
    definition = Definition({"events": {"go": {"transition": {"initialized": state}}}})
    expected = [".".join(segments[:depth]) for depth in range(1, len(segments))]
    assert definition.state_namespaces == expected
    for namespace in expected:
        assert definition.lookup_states(namespace)[0].name == state


# -----------------------------------------------------------------------------
# ERROR EVENT
# -----------------------------------------------------------------------------


def test_compile_definition_injects_the_error_event():
    definition = compile_definition({"events": {"one": {"transitions": {"initialized": "a"}}}})
    assert ERROR_EVENT in definition.event_names
    assert FAILED_STATE in definition.state_names
    assert [t.from_state for t in definition.transitions_for(ERROR_EVENT)] == ["initialized", "a", "failed"]


def test_compile_definition_keeps_a_user_error_event():
    definition = compile_definition(
        {"events": {"one": {"transition": {"initialized": "a"}}, "error": {"transition": {"a": "broken"}}}}
    )
    assert FAILED_STATE not in definition.state_names
    assert definition.transitions_for(ERROR_EVENT)[0].to_state == "broken"


def test_compile_definition_extends_explicit_states():
    spec = {
        "states": {"explicitStates": ["initialized", "a"]},
        "events": {"one": {"transition": {"initialized": "a"}}},
    }
    definition = compile_definition(spec)
    assert definition.state_names == ["initialized", "a", "failed"]
    assert spec["states"]["explicitStates"] == ["initialized", "a"]


def test_definition_does_not_inject_the_error_event():
    definition = compile_definition({"events": {"one": {"transition": {"initialized": "a"}}}}, error_event=False)
    assert ERROR_EVENT not in definition.event_names
