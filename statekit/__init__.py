"""
statekit: declarative finite state machines with asynchronous callbacks.

Architecture:
    - core.definition compiles a raw spec into an immutable transition table
    - core.machine resolves events to transitions and owns the current state
    - core.transition runs the callback phases of one state change
    - runtime adapts host objects (targets) and provides the Stateful mixin
    - config loads specs from YAML or JSON files

Logging:
    Every module logs to ``logging.getLogger(__name__)``. The package installs
    a NullHandler; applications configure handlers and levels.
"""

import logging

from .config import load_spec, machine_from_file
from .core.definition import (
    Definition,
    EventDescriptor,
    StateDescriptor,
    TransitionRecord,
    compile_definition,
)
from .core.errors import (
    CallbackLookupError,
    DefinitionError,
    DispatchError,
    EventNotFoundError,
    FSMError,
    GuardError,
    StateNotFoundError,
    ValidationError,
)
from .core.hooks import HookManager
from .core.machine import Machine
from .core.transition import PHASES, CallbackDescriptor, Transition, TransitionStatus
from .interfaces.protocols import Hook, Target
from .runtime.stateful import Stateful
from .runtime.targets import MappingTarget, ObjectTarget, resolve_target

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    # Compilation
    "Definition",
    "TransitionRecord",
    "StateDescriptor",
    "EventDescriptor",
    "compile_definition",
    # Runtime
    "Machine",
    "Transition",
    "TransitionStatus",
    "CallbackDescriptor",
    "PHASES",
    "HookManager",
    "Stateful",
    # Targets and hooks
    "Target",
    "Hook",
    "ObjectTarget",
    "MappingTarget",
    "resolve_target",
    # Configuration
    "load_spec",
    "machine_from_file",
    # Errors
    "FSMError",
    "ValidationError",
    "DefinitionError",
    "StateNotFoundError",
    "EventNotFoundError",
    "DispatchError",
    "GuardError",
    "CallbackLookupError",
]
