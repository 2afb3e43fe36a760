# statekit/core/machine.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set

from statekit.core.definition import (
    ERROR_EVENT,
    INITIAL_STATE_KEYS,
    Definition,
    TransitionRecord,
    compile_definition,
)
from statekit.core.errors import DispatchError, FSMError, GuardError, StateNotFoundError, ValidationError
from statekit.core.hooks import HookManager
from statekit.core.transition import Transition
from statekit.core.utils import get_first, is_object
from statekit.interfaces.protocols import Hook, Target
from statekit.interfaces.types import EventName, RawSpec, StateFlag, StateName
from statekit.runtime.targets import resolve_target

logger = logging.getLogger(__name__)


class Machine:
    """
    The runtime of a compiled definition.

    A Machine holds the current state, resolves events to transitions through
    their guards, performs them against its target and commits the new state
    once a transition settles. Transitions that target different states may
    not run at the same time.

    Example::

        machine = Machine({"run": {"transition": {"off": "on"}}}, {"initialState": "off"})
        await machine.send("run")
        assert machine.current_state == "on"
    """

    def __init__(
        self,
        events: Mapping[EventName, Any],
        states: Optional[Mapping[str, Any]] = None,
        *,
        target: Any = None,
        initial_state: Optional[StateName] = None,
        hooks: Optional[Iterable[Hook]] = None,
    ) -> None:
        """
        :param events: Event definitions, as the ``events`` section of a spec.
        :param states: Optional ``states`` section of a spec.
        :param target: Object supplying guards and callbacks; defaults to the machine itself.
        :param initial_state: Overrides the definition's initial state.
        :param hooks: Optional hook objects notified of commits and failures.
        :raises DefinitionError: If the definition is invalid.
        :raises StateNotFoundError: If ``initial_state`` is not a known state.
        """
        spec: Dict[str, Any] = {"events": events}
        if states is not None:
            spec["states"] = states
        self._definition: Definition = compile_definition(spec)
        self._target: Target = resolve_target(self if target is None else target)
        self._hooks = HookManager(hooks)

        initial = initial_state if initial_state is not None else self._definition.initial_state
        self._definition.lookup_state(initial)
        self._current_state: StateName = initial

        self._active_transitions: List[Transition] = []
        self._background_tasks: Set[asyncio.Task] = set()
        self._state_flags: Dict[str, StateFlag] = {
            name: partial(self.in_state, prefix) for name, prefix in self._definition.state_flag_names.items()
        }

    @classmethod
    def create(cls, config: RawSpec) -> "Machine":
        """
        Build a machine from one mapping holding ``events`` and optionally
        ``states``, ``target``, ``initialState`` and ``hooks``.
        """
        if not is_object(config):
            raise ValidationError("machine configuration must be a mapping")
        return cls(
            config.get("events"),
            config.get("states"),
            target=config.get("target"),
            initial_state=get_first(config, INITIAL_STATE_KEYS),
            hooks=config.get("hooks"),
        )

    # ------------------------------------------------------------------
    # Read-only surface
    # ------------------------------------------------------------------

    @property
    def definition(self) -> Definition:
        return self._definition

    @property
    def target(self) -> Target:
        return self._target

    @property
    def current_state(self) -> StateName:
        return self._current_state

    @property
    def is_transitioning(self) -> bool:
        return bool(self._active_transitions)

    @property
    def active_transitions(self) -> List[Transition]:
        return list(self._active_transitions)

    @property
    def state_names(self) -> List[StateName]:
        return self._definition.state_names

    @property
    def event_names(self) -> List[EventName]:
        return self._definition.event_names

    @property
    def state_flag_names(self) -> List[str]:
        return list(self._state_flags)

    @property
    def state_flags(self) -> Dict[str, StateFlag]:
        return dict(self._state_flags)

    @property
    def hooks(self) -> List[Hook]:
        return self._hooks.hooks

    def state_flag(self, name: str) -> bool:
        """
        Read an ``is_in_*`` flag.

        :raises KeyError: If ``name`` is not a generated flag.
        """
        return self._state_flags[name]()

    def register_hook(self, hook: Hook) -> None:
        self._hooks.register_hook(hook)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def send(self, event: EventName, *args: Any) -> "asyncio.Task[Transition]":
        """
        Dispatch ``event`` and start the resulting transition.

        Every dispatch failure is raised before the transition starts, so no
        state changes when ``send`` raises.

        While transitions are active, a new one is accepted when it stays in
        the current state or when every active transition targets its
        destination. The second case is deliberately looser than refusing any
        new destination: state commits on settlement, so a repeated event for
        the in-flight destination must still be accepted.

        :param event: The event name.
        :param args: Arguments passed to every callback of the transition.
        :return: The transition's task; it resolves to the Transition or is
            rejected with the callback failure.
        :raises DispatchError: For unknown events, unresolvable transitions and
            conflicts with active transitions.
        :raises GuardError: If a guard is not defined on the target.
        """
        if not self._definition.has_event(event):
            raise DispatchError(
                f'unknown state event "{event}", try one of [{", ".join(self._definition.event_names)}]'
            )

        transition = self.transition_for(event, args)

        if self._active_transitions and transition.to_state != self._current_state:
            conflicting = [t for t in self._active_transitions if t.to_state != transition.to_state]
            if conflicting:
                raise DispatchError(
                    f'cannot send "{event}" to enter "{transition.to_state}" while transitioning '
                    f'to "{conflicting[0].to_state}"'
                )

        task = transition.perform()
        logger.debug("Sent %s: %s -> %s", event, transition.from_state, transition.to_state)
        self._active_transitions.append(transition)
        task.add_done_callback(partial(self._settle, transition))
        return task

    def transition_for(self, event: EventName, args: Sequence[Any] = ()) -> Transition:
        """
        Resolve the transition ``event`` would trigger from the current state
        without performing it.

        :raises DispatchError: If no transition is defined or none resolves.
        :raises GuardError: If a guard is not defined on the target.
        """
        records = self._definition.transitions_for(event, self._current_state)
        if not records:
            raise DispatchError(
                f'no transition is defined for event "{event}" in state "{self._current_state}"'
            )

        record = self.outcome_of_potential_transitions(records)
        if record is None:
            raise DispatchError(
                f'no unguarded transition was resolved for event "{event}" in state "{self._current_state}"'
            )
        return Transition(self, record, args)

    def outcome_of_potential_transitions(self, records: Sequence[TransitionRecord]) -> Optional[TransitionRecord]:
        """
        Pick the record that wins guard resolution: records are tried in
        declaration order and the first one that is unguarded, whose ``do_if``
        guard passes or whose ``do_unless`` guard fails wins.
        """
        for record in records:
            if not record.is_guarded:
                return record
            if record.do_if is not None and self.check_guard(record.do_if):
                return record
            if record.do_unless is not None and self.check_guard(record.do_unless, inverse=True):
                return record
        return None

    def check_guard(self, name: str, inverse: bool = False) -> bool:
        """
        Evaluate the guard ``name`` against the target. Callable guards are called
        with no arguments; any value is coerced to bool.

        :param inverse: Negate the result, for ``do_unless`` guards.
        :raises GuardError: If the target does not define ``name``.
        """
        try:
            value = self._target.read_guard(name)
        except LookupError:
            raise GuardError(f'guard "{name}" is not defined on target {self._target!r}') from None
        result = bool(value() if callable(value) else value)
        return not result if inverse else result

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def in_state(self, prefix: str) -> bool:
        """
        True if the current state is ``prefix`` or nested under it.

        :raises StateNotFoundError: If no state or namespace matches ``prefix``.
        """
        self._definition.lookup_states(prefix)
        return self._current_state == prefix or self._current_state.startswith(prefix + ".")

    def can_enter_state(self, state: StateName) -> bool:
        """
        True if some transition from the current state into ``state`` would win
        guard resolution right now.
        """
        current = self._definition.lookup_state(self._current_state)
        records = [record for record in current.exit_transitions if record.to_state == state]
        return self.outcome_of_potential_transitions(records) is not None

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def abort_active_transitions(self) -> None:
        """Abort every active transition and forget about them."""
        while self._active_transitions:
            self._active_transitions.pop().abort()

    def override_state(self, state: StateName) -> None:
        """
        Force the current state, for initialization and tests.

        :raises StateNotFoundError: If ``state`` is unknown.
        :raises DispatchError: While transitions are active.
        """
        if not self._definition.has_state(state):
            raise StateNotFoundError(f'cannot override the state to unknown state "{state}"')
        if self._active_transitions:
            raise DispatchError(f'cannot override the state to "{state}" while transitioning')
        self._commit(state)

    async def wait_for_idle(self) -> None:
        """
        Wait until no transition is active and every automatic error dispatch
        has finished. Outcomes are not raised; inspect the transitions instead.
        """
        while self._active_transitions or self._background_tasks:
            pending = [t.task for t in self._active_transitions if t.task is not None]
            pending.extend(self._background_tasks)
            if not pending:
                break
            await asyncio.gather(*pending, return_exceptions=True)
            # Done callbacks run on the next loop iteration.
            await asyncio.sleep(0)

    def _settle(self, transition: Transition, task: asyncio.Task) -> None:
        error = None if task.cancelled() else task.exception()
        if transition in self._active_transitions:
            self._active_transitions.remove(transition)

        if transition.is_aborted:
            logger.debug("%s settled after it was aborted", transition)
            return
        if task.cancelled():
            logger.warning("%s was cancelled, state remains %s", transition, self._current_state)
            return
        if error is None:
            if transition.from_state != self._current_state:
                logger.debug("%s started in a state the machine has left, nothing to commit", transition)
                return
            self._commit(transition.to_state)
            return
        self._fail(transition, error)

    def _commit(self, state: StateName) -> None:
        previous = self._current_state
        self._current_state = state
        logger.debug("Committed state %s (was %s)", state, previous)
        self._hooks.execute_on_state_change(previous, state)

    def _fail(self, transition: Transition, error: BaseException) -> None:
        logger.warning("%s failed: %r", transition, error)
        self.abort_active_transitions()
        self._hooks.execute_on_error(error, transition)

        if transition.event == ERROR_EVENT or not self._definition.has_event(ERROR_EVENT):
            return
        try:
            task = self.send(ERROR_EVENT, {"error": error, "transition": transition})
        except FSMError:
            logger.exception("Could not send %s after %s failed", ERROR_EVENT, transition)
            return
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    def __repr__(self) -> str:
        return f"Machine(current_state={self._current_state!r}, is_transitioning={self.is_transitioning})"
