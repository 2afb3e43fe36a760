# statekit/interfaces/protocols.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details
from typing import TYPE_CHECKING, Any, Optional, Protocol, runtime_checkable

from statekit.interfaces.types import StateName

if TYPE_CHECKING:
    from statekit.core.transition import Transition


@runtime_checkable
class Target(Protocol):
    """
    Target protocol for type checking.

    The target is the object a machine drives: it supplies guard values and the
    callbacks run during each transition phase, both looked up by name.

    Methods:
        read_guard(name): Returns the value stored under a guard name.
        get_callback(name): Returns the member registered under a callback name.

    Error Handling:
    - Both methods raise LookupError when the name is not defined. The engine
      turns that into a GuardError or CallbackLookupError with context.
    """

    def read_guard(self, name: str) -> Any:
        """Return the guard value (a plain value or a zero-argument callable)."""
        ...

    def get_callback(self, name: str) -> Any:
        """Return the member named ``name``; the engine checks it is callable."""
        ...


@runtime_checkable
class Hook(Protocol):
    """
    Hook protocol for machine observers.

    Hooks may implement any subset of these methods; the HookManager only calls
    the ones that exist.

    Runtime Invariants:
    - on_state_change runs after current_state has been committed.
    - on_error runs after the failed transition left the active set and before
      the automatic error event is dispatched.
    """

    def on_state_change(self, previous: Optional[StateName], current: StateName) -> None:
        """Called each time the machine commits a new current state."""
        ...

    def on_error(self, error: BaseException, transition: "Transition") -> None:
        """Called when a transition performed by the machine is rejected."""
        ...
