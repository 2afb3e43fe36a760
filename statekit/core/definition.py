# statekit/core/definition.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from statekit.core.errors import DefinitionError, EventNotFoundError, StateNotFoundError
from statekit.core.utils import get_first, is_object, own_properties_of, to_list, underscore
from statekit.interfaces.types import CallbackIdentifier, EventName, RawSpec, StateName

logger = logging.getLogger(__name__)

ALL_MACRO = "$all"
SAME_MACRO = "$same"
INITIAL_STATE_NAME = "initialized"
ERROR_EVENT = "error"
FAILED_STATE = "failed"
STATE_FLAG_PREFIX = "is_in_"

TRANSITION_KEYS = ("transition", "transitions")
INITIAL_STATE_KEYS = ("initialState", "initial_state")
KNOWN_STATES_KEYS = ("knownStates", "explicitStates", "known_states", "explicit_states")
FROM_KEYS = ("from", "fromState", "fromStates", "from_state", "from_states")
TO_KEYS = ("to", "toState", "to_state")
DO_IF_KEYS = ("guard", "doIf", "do_if")
DO_UNLESS_KEYS = ("unless", "doUnless", "do_unless")

# Canonical phase name -> accepted spellings in a raw spec.
EVENT_PHASE_KEYS: Dict[str, Tuple[str, ...]] = {
    "before_event": ("before", "beforeEvent", "before_event"),
    "after_event": ("after", "afterEvent", "after_event"),
}
STATE_PHASE_KEYS: Dict[str, Tuple[str, ...]] = {
    "will_exit": ("willExit", "will_exit"),
    "will_enter": ("willEnter", "will_enter"),
    "did_exit": ("didExit", "did_exit"),
    "did_enter": ("didEnter", "did_enter"),
}
PHASE_KEYS: Dict[str, Tuple[str, ...]] = {**EVENT_PHASE_KEYS, **STATE_PHASE_KEYS}

_STATE_OPTION_KEYS = frozenset(INITIAL_STATE_KEYS + KNOWN_STATES_KEYS)
_TRANSITION_OPTION_KEYS = frozenset(
    FROM_KEYS
    + TO_KEYS
    + DO_IF_KEYS
    + DO_UNLESS_KEYS
    + tuple(alias for aliases in PHASE_KEYS.values() for alias in aliases)
)


@dataclass(frozen=True)
class TransitionRecord:
    """
    Canonical form of one transition: a single from-state and to-state for an
    event, its guard and the callback identifiers for every phase.
    """

    event: EventName
    from_state: StateName
    to_state: StateName
    do_if: Optional[str] = None
    do_unless: Optional[str] = None
    before_event: Tuple[CallbackIdentifier, ...] = ()
    will_exit: Tuple[CallbackIdentifier, ...] = ()
    will_enter: Tuple[CallbackIdentifier, ...] = ()
    did_exit: Tuple[CallbackIdentifier, ...] = ()
    did_enter: Tuple[CallbackIdentifier, ...] = ()
    after_event: Tuple[CallbackIdentifier, ...] = ()

    @property
    def is_guarded(self) -> bool:
        return self.do_if is not None or self.do_unless is not None

    def callbacks(self, phase: str) -> Tuple[CallbackIdentifier, ...]:
        """Return the callback identifiers declared on this record for ``phase``."""
        if phase not in PHASE_KEYS:
            raise ValueError(f'unknown transition phase "{phase}"')
        return getattr(self, phase)


@dataclass(frozen=True)
class StateDescriptor:
    """A compiled state with its own lifecycle hooks and adjacent transitions."""

    name: StateName
    will_enter: Tuple[CallbackIdentifier, ...] = ()
    did_enter: Tuple[CallbackIdentifier, ...] = ()
    will_exit: Tuple[CallbackIdentifier, ...] = ()
    did_exit: Tuple[CallbackIdentifier, ...] = ()
    exit_transitions: Tuple[TransitionRecord, ...] = field(default=(), repr=False)
    enter_transitions: Tuple[TransitionRecord, ...] = field(default=(), repr=False)

    def callbacks(self, phase: str) -> Tuple[CallbackIdentifier, ...]:
        """Return the state-level hooks for an enter/exit phase, or () for event phases."""
        if phase in STATE_PHASE_KEYS:
            return getattr(self, phase)
        return ()


@dataclass(frozen=True)
class EventDescriptor:
    """A compiled event and its transitions in declaration order."""

    name: EventName
    transitions: Tuple[TransitionRecord, ...] = field(default=(), repr=False)


@dataclass
class _PendingTransition:
    """Internal, pre-expansion form of a transition (from-state may still be $all)."""

    event: EventName
    from_state: StateName
    to_state: StateName
    options: Dict[str, Any]


class Definition:
    """
    Compiles a raw, permissive machine spec into a canonical and validated
    transition table.

    The raw spec is a mapping with a required ``events`` mapping and an optional
    ``states`` mapping::

        {
            "states": {"initialState": "off"},
            "events": {
                "run": {"transitions": [{"off": "on", "guard": "hasPower"}]},
                "reset": {"transition": {"$all": "off"}},
            },
        }

    A Definition has no runtime behavior: it never evaluates guards or invokes
    callbacks. It only answers questions about states, events and transitions.
    """

    def __init__(self, spec: RawSpec) -> None:
        """
        Compile ``spec``.

        :param spec: The raw definition mapping.
        :raises DefinitionError: If ``spec`` is malformed, ambiguous or inconsistent.
        """
        if not is_object(spec):
            raise DefinitionError("a machine definition must be a mapping")

        events = spec.get("events")
        states = spec.get("states")

        if events is None:
            raise DefinitionError('a machine definition requires an "events" mapping')
        if not is_object(events):
            raise DefinitionError('"events" must be a mapping of event names to event definitions')
        if not events:
            raise DefinitionError("a machine definition must define at least one event")
        if states is None:
            states = {}
        elif not is_object(states):
            raise DefinitionError('"states" must be a mapping if it is given')

        self._initial_state: StateName = get_first(states, INITIAL_STATE_KEYS) or INITIAL_STATE_NAME
        explicit_states = get_first(states, KNOWN_STATES_KEYS)
        self._explicit_states: Optional[List[StateName]] = (
            None if explicit_states is None else _unique(to_list(explicit_states))
        )
        state_hooks = self._compile_state_hooks(states)

        pending: Dict[EventName, List[_PendingTransition]] = {}
        for event_name, event_spec in events.items():
            pending[event_name] = self._compile_event(event_name, event_spec)

        referenced = self._referenced_states(pending)
        if self._explicit_states is not None:
            self._check_defined(referenced)
            known_states = list(self._explicit_states)
        else:
            known_states = referenced

        self._transitions_by_event: Dict[EventName, Tuple[TransitionRecord, ...]] = {}
        for event_name, entries in pending.items():
            records = self._expand(entries, known_states)
            if not records:
                raise DefinitionError(f'event "{event_name}" must have at least one transition')
            self._check_ambiguity(event_name, records)
            self._transitions_by_event[event_name] = tuple(records)

        self._transitions: Tuple[TransitionRecord, ...] = tuple(
            record for records in self._transitions_by_event.values() for record in records
        )

        if self._explicit_states is not None:
            self._check_used()

        self._state_names: List[StateName] = self._collect_state_names(known_states)
        for name in state_hooks:
            if name not in self._state_names:
                raise DefinitionError(f'state "{name}" declares callbacks but is not used by any transition')

        self._states: Dict[StateName, StateDescriptor] = {
            name: self._describe_state(name, state_hooks.get(name, {})) for name in self._state_names
        }
        self._events: Dict[EventName, EventDescriptor] = {
            name: EventDescriptor(name=name, transitions=records)
            for name, records in self._transitions_by_event.items()
        }
        self._state_namespaces: List[str] = self._collect_namespaces(self._state_names)
        self._state_flag_names: Dict[str, str] = self._collect_state_flags()

        logger.debug(
            "Compiled definition with %d states, %d events and %d transitions",
            len(self._state_names),
            len(self._events),
            len(self._transitions),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def initial_state(self) -> StateName:
        return self._initial_state

    @property
    def is_explicit(self) -> bool:
        """True when ``spec`` listed its known states explicitly."""
        return self._explicit_states is not None

    @property
    def state_names(self) -> List[StateName]:
        return list(self._state_names)

    @property
    def event_names(self) -> List[EventName]:
        return list(self._events)

    @property
    def states(self) -> List[StateDescriptor]:
        return list(self._states.values())

    @property
    def events(self) -> List[EventDescriptor]:
        return list(self._events.values())

    @property
    def transitions(self) -> List[TransitionRecord]:
        return list(self._transitions)

    @property
    def state_namespaces(self) -> List[str]:
        """Distinct dotted prefixes of the state names, e.g. ``active`` for ``active.running``."""
        return list(self._state_namespaces)

    @property
    def state_flag_names(self) -> Dict[str, str]:
        """Mapping of ``is_in_*`` accessor names to the state or namespace they test."""
        return dict(self._state_flag_names)

    def has_state(self, name: StateName) -> bool:
        return name in self._states

    def has_event(self, name: EventName) -> bool:
        return name in self._events

    def transitions_for(self, event: EventName, from_state: Optional[StateName] = None) -> List[TransitionRecord]:
        """
        Return the transitions registered for ``event``, optionally only those
        leaving ``from_state``. Returns an empty list when nothing matches.
        """
        records = self._transitions_by_event.get(event, ())
        if from_state is None:
            return list(records)
        return [record for record in records if record.from_state == from_state]

    def lookup_state(self, name: StateName) -> StateDescriptor:
        """
        :raises StateNotFoundError: If ``name`` is not a state of this definition.
        """
        try:
            return self._states[name]
        except KeyError:
            raise StateNotFoundError(f'"{name}" is not a known state, try one of [{", ".join(self._state_names)}]') from None

    def lookup_event(self, name: EventName) -> EventDescriptor:
        """
        :raises EventNotFoundError: If ``name`` is not an event of this definition.
        """
        try:
            return self._events[name]
        except KeyError:
            raise EventNotFoundError(f'"{name}" is not a known event, try one of [{", ".join(self._events)}]') from None

    def lookup_states(self, prefix: str) -> List[StateDescriptor]:
        """
        Return every state named ``prefix`` or nested under the ``prefix`` namespace.

        :raises StateNotFoundError: If no state matches.
        """
        nested = prefix + "."
        states = [state for name, state in self._states.items() if name == prefix or name.startswith(nested)]
        if not states:
            raise StateNotFoundError(f'there are no states or substates defined for "{prefix}"')
        return states

    # ------------------------------------------------------------------
    # Compilation
    # ------------------------------------------------------------------

    def _compile_state_hooks(self, states: Mapping[str, Any]) -> Dict[StateName, Dict[str, Tuple]]:
        hooks: Dict[StateName, Dict[str, Tuple]] = {}
        for name, value in states.items():
            if name in _STATE_OPTION_KEYS:
                continue
            if not is_object(value):
                raise DefinitionError(f'unknown states option "{name}"')
            unknown = [key for key in value if not any(key in aliases for aliases in STATE_PHASE_KEYS.values())]
            if unknown:
                raise DefinitionError(f'state "{name}" declares unknown hooks: {", ".join(map(str, unknown))}')
            hooks[name] = {
                phase: tuple(to_list(get_first(value, aliases))) for phase, aliases in STATE_PHASE_KEYS.items()
            }
        return hooks

    def _compile_event(self, name: EventName, event: Any) -> List[_PendingTransition]:
        if not is_object(event):
            raise DefinitionError(f'event "{name}" must be a mapping')

        present = [key for key in TRANSITION_KEYS if event.get(key) is not None]
        if len(present) > 1:
            raise DefinitionError(f'event "{name}" may declare "transition" or "transitions", not both')
        if not present:
            raise DefinitionError(f'event "{name}" must have at least one transition')

        event_options = self._options(event)
        entries: List[_PendingTransition] = []
        for definition in to_list(event[present[0]]):
            entries.extend(self._compile_transition(name, definition, event_options))
        return entries

    def _compile_transition(
        self, event: EventName, definition: Any, event_options: Dict[str, Any]
    ) -> List[_PendingTransition]:
        if not is_object(definition):
            raise DefinitionError(f'transitions of event "{event}" must be mappings')

        options = self._merge_options(event_options, self._options(definition))
        from_states = get_first(definition, FROM_KEYS)
        to_state = get_first(definition, TO_KEYS)

        if from_states is None and to_state is None:
            pairs = [key for key in own_properties_of(definition) if key not in _TRANSITION_OPTION_KEYS]
            if len(pairs) > 1:
                raise DefinitionError(
                    f'event "{event}" declares {len(pairs)} from/to pairs in one transition; '
                    "there can be only one transition mapping per object"
                )
            if not pairs:
                raise DefinitionError(f'a transition of event "{event}" does not declare a from and to state')
            from_states = pairs[0]
            to_state = definition[from_states]
        elif from_states is None or to_state is None:
            raise DefinitionError(f'a transition of event "{event}" must declare both "from" and "to"')

        if not isinstance(to_state, str):
            raise DefinitionError(f'the to state of event "{event}" must be a state name')
        if to_state == ALL_MACRO:
            raise DefinitionError(f'"{ALL_MACRO}" cannot be used as the to state of event "{event}"')

        entries = []
        for from_state in to_list(from_states):
            if not isinstance(from_state, str):
                raise DefinitionError(f'the from states of event "{event}" must be state names')
            if from_state == SAME_MACRO:
                raise DefinitionError(f'"{SAME_MACRO}" cannot be used as the from state of event "{event}"')
            entries.append(_PendingTransition(event, from_state, to_state, options))
        return entries

    @staticmethod
    def _options(source: Mapping[str, Any]) -> Dict[str, Any]:
        options: Dict[str, Any] = {
            phase: to_list(get_first(source, aliases)) for phase, aliases in PHASE_KEYS.items()
        }
        options["do_if"] = get_first(source, DO_IF_KEYS)
        options["do_unless"] = get_first(source, DO_UNLESS_KEYS)
        return options

    @staticmethod
    def _merge_options(event_options: Dict[str, Any], options: Dict[str, Any]) -> Dict[str, Any]:
        merged = {phase: event_options[phase] + options[phase] for phase in PHASE_KEYS}
        if options["do_if"] is not None or options["do_unless"] is not None:
            merged["do_if"] = options["do_if"]
            merged["do_unless"] = options["do_unless"]
        else:
            merged["do_if"] = event_options["do_if"]
            merged["do_unless"] = event_options["do_unless"]
        return merged

    def _referenced_states(self, pending: Mapping[EventName, List[_PendingTransition]]) -> List[StateName]:
        names = [self._initial_state]
        for entries in pending.values():
            for entry in entries:
                names.append(entry.from_state)
                names.append(entry.to_state)
        return [name for name in _unique(names) if name not in (ALL_MACRO, SAME_MACRO)]

    def _check_defined(self, referenced: List[StateName]) -> None:
        for name in referenced:
            if name not in self._explicit_states:
                raise DefinitionError(
                    f'"{name}" is not a defined state, add it to the list of known states '
                    f'[{", ".join(self._explicit_states)}]'
                )

    def _check_used(self) -> None:
        used = set()
        for record in self._transitions:
            used.add(record.from_state)
            used.add(record.to_state)
        for name in self._explicit_states:
            if name not in used:
                raise DefinitionError(f'"{name}" is a defined state but it is not used by any transition')

    @staticmethod
    def _expand(entries: List[_PendingTransition], known_states: Sequence[StateName]) -> List[TransitionRecord]:
        records = []
        for entry in entries:
            from_states = known_states if entry.from_state == ALL_MACRO else [entry.from_state]
            for from_state in from_states:
                to_state = from_state if entry.to_state == SAME_MACRO else entry.to_state
                records.append(
                    TransitionRecord(
                        event=entry.event,
                        from_state=from_state,
                        to_state=to_state,
                        do_if=entry.options["do_if"],
                        do_unless=entry.options["do_unless"],
                        **{phase: tuple(entry.options[phase]) for phase in PHASE_KEYS},
                    )
                )
        return records

    @staticmethod
    def _check_ambiguity(event: EventName, records: List[TransitionRecord]) -> None:
        unguarded = set()
        for record in records:
            if record.is_guarded:
                continue
            if record.from_state in unguarded:
                raise DefinitionError(
                    f'event "{event}" has more than one unguarded transition from state "{record.from_state}"'
                )
            unguarded.add(record.from_state)

    def _collect_state_names(self, known_states: List[StateName]) -> List[StateName]:
        names = list(known_states)
        for record in self._transitions:
            names.append(record.from_state)
            names.append(record.to_state)
        return _unique(names)

    def _describe_state(self, name: StateName, hooks: Mapping[str, Tuple]) -> StateDescriptor:
        return StateDescriptor(
            name=name,
            exit_transitions=tuple(record for record in self._transitions if record.from_state == name),
            enter_transitions=tuple(record for record in self._transitions if record.to_state == name),
            **{phase: hooks.get(phase, ()) for phase in STATE_PHASE_KEYS},
        )

    @staticmethod
    def _collect_namespaces(state_names: List[StateName]) -> List[str]:
        namespaces = []
        for name in state_names:
            segments = name.split(".")
            for depth in range(1, len(segments)):
                namespaces.append(".".join(segments[:depth]))
        return _unique(namespaces)

    def _collect_state_flags(self) -> Dict[str, str]:
        flags: Dict[str, str] = {}
        for prefix in _unique(self._state_namespaces + self._state_names):
            flag = STATE_FLAG_PREFIX + underscore(prefix)
            if flag in flags:
                raise DefinitionError(f'states "{flags[flag]}" and "{prefix}" both map to the accessor "{flag}"')
            flags[flag] = prefix
        return flags

    def __repr__(self) -> str:
        return f"Definition(initial_state={self._initial_state!r}, states={self._state_names!r})"


def compile_definition(spec: RawSpec, *, error_event: bool = True) -> Definition:
    """
    Compile ``spec`` the way a Machine does.

    Unless ``spec`` declares its own ``error`` event, a default one is injected
    that moves every state to the terminal ``failed`` state.

    :param spec: The raw definition mapping.
    :param error_event: Set to False to compile ``spec`` exactly as written.
    :raises DefinitionError: If ``spec`` is invalid.
    """
    if error_event and is_object(spec) and is_object(spec.get("events")) and ERROR_EVENT not in spec["events"]:
        spec = _with_default_error_event(spec)
    return Definition(spec)


def _with_default_error_event(spec: RawSpec) -> Dict[str, Any]:
    events = dict(spec["events"])
    events[ERROR_EVENT] = {"transition": {ALL_MACRO: FAILED_STATE}}
    spec = dict(spec, events=events)

    states = spec.get("states")
    if is_object(states):
        explicit = get_first(states, KNOWN_STATES_KEYS)
        if explicit is not None:
            states = {key: value for key, value in states.items() if key not in KNOWN_STATES_KEYS}
            states["knownStates"] = to_list(explicit) + [FAILED_STATE]
            spec["states"] = states
    return spec


def _unique(values: Sequence[Any]) -> List[Any]:
    seen = set()
    unique = []
    for value in values:
        if value not in seen:
            seen.add(value)
            unique.append(value)
    return unique
