# statekit/core/errors.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details


class FSMError(Exception):
    """
    Base exception class for errors raised by the state machine engine.
    """


class ValidationError(FSMError):
    """
    Raised when validation detects configuration or runtime constraint violations.
    """


class DefinitionError(ValidationError):
    """
    Raised while compiling a machine definition that is malformed, ambiguous or
    inconsistent. Definition errors are fatal to machine construction.
    """


class StateNotFoundError(FSMError):
    """
    Raised when a requested state (or state namespace) does not exist in the definition.
    """


class EventNotFoundError(FSMError):
    """
    Raised when a requested event does not exist in the definition.
    """


class DispatchError(FSMError):
    """
    Raised synchronously by ``Machine.send`` and ``Machine.transition_for`` when an
    event cannot be turned into a transition: the event is unknown, no transition
    is defined or resolved for the current state, or the transition would conflict
    with the transitions already in flight.
    """


class GuardError(FSMError):
    """
    Raised when a transition guard names a property the target does not define.
    """


class CallbackLookupError(FSMError):
    """
    Raised when a named callback is missing from the target or is not callable.
    """
