# statekit/runtime/stateful.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import asyncio
from typing import Any, ClassVar, List, Mapping, Optional

from statekit.core.machine import Machine
from statekit.core.transition import Transition
from statekit.interfaces.types import EventName, StateName


class Stateful:
    """
    Mixin that gives a class its own state machine.

    Subclasses declare ``fsm_events`` (and optionally ``fsm_states``,
    ``fsm_initial_state`` and ``fsm_hooks``). Each instance gets a Machine
    whose target is the instance itself, so guards and callbacks are plain
    attributes and methods of the class::

        class Kitty(Stateful):
            fsm_states = {"initialState": "sleeping"}
            fsm_events = {"wake": {"transition": {"sleeping": "awake"}, "after": "stretch"}}

            def stretch(self):
                ...

        kitty = Kitty()
        kitty.is_in_sleeping  # True

    ``is_in_<state>`` attributes are read live from the machine.
    """

    fsm_events: ClassVar[Optional[Mapping[str, Any]]] = None
    fsm_states: ClassVar[Optional[Mapping[str, Any]]] = None
    fsm_initial_state: ClassVar[Optional[StateName]] = None
    fsm_hooks: ClassVar[Optional[List[Any]]] = None

    def __init__(self, *args: Any, fsm_initial_state: Optional[StateName] = None, **kwargs: Any) -> None:
        """
        :param fsm_initial_state: Overrides the class-level initial state for this instance.
        """
        super().__init__(*args, **kwargs)
        initial_state = fsm_initial_state if fsm_initial_state is not None else self.fsm_initial_state
        self._fsm = Machine(
            self.fsm_events,
            self.fsm_states,
            target=self,
            initial_state=initial_state,
            hooks=self.fsm_hooks,
        )

    @property
    def fsm(self) -> Machine:
        return self._fsm

    @property
    def fsm_current_state(self) -> StateName:
        return self._fsm.current_state

    @property
    def fsm_is_loading(self) -> bool:
        return self._fsm.is_transitioning

    def send_state_event(self, event: EventName, *args: Any) -> "asyncio.Task[Transition]":
        """Send ``event`` to this object's machine; see Machine.send."""
        return self._fsm.send(event, *args)

    def __getattr__(self, name: str) -> Any:
        # Only reached when normal lookup fails; the machine may not exist yet
        # while __init__ is still running.
        fsm = self.__dict__.get("_fsm")
        if fsm is not None and name in fsm.state_flags:
            return fsm.state_flag(name)
        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    def __dir__(self) -> List[str]:
        fsm = self.__dict__.get("_fsm")
        flags = fsm.state_flag_names if fsm is not None else []
        return sorted(set(super().__dir__()) | set(flags))
