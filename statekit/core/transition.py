# statekit/core/transition.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

from statekit.core.definition import TransitionRecord
from statekit.core.errors import CallbackLookupError
from statekit.core.utils import with_promise
from statekit.interfaces.types import CallbackFunc, EventName, PhaseName, PhaseOutcomes, StateName

if TYPE_CHECKING:
    from statekit.core.machine import Machine

logger = logging.getLogger(__name__)

PHASES: Tuple[PhaseName, ...] = (
    "before_event",
    "will_exit",
    "will_enter",
    "did_exit",
    "did_enter",
    "after_event",
)
ENTER_PHASES = frozenset(("will_enter", "did_enter"))
EXIT_PHASES = frozenset(("will_exit", "did_exit"))

VIA_TRANSITION = "transition"
VIA_STATE = "state"


class TransitionStatus(Enum):
    PENDING = auto()
    RESOLVING = auto()
    RESOLVED = auto()
    REJECTED = auto()
    ABORTED = auto()


@dataclass(frozen=True)
class CallbackDescriptor:
    """
    A callback gathered for one phase.

    :param via: Where the callback was declared, ``transition`` or ``state``.
    :param name: The target member name, or a synthetic ``_inline:<source>-<index>_``.
    :param fn: The resolved callable.
    """

    via: str
    name: str
    fn: CallbackFunc

    @property
    def key(self) -> str:
        return f"{self.via}:{self.name}"


class Transition:
    """
    One state change in flight.

    A Transition is built by a Machine from a resolved TransitionRecord and the
    arguments the event was sent with. ``perform()`` runs the six callback
    phases in order against the machine's target, recording every callback
    outcome in ``resolutions`` and ``rejections`` keyed by phase and then by
    ``"<via>:<name>"``.
    """

    def __init__(self, machine: "Machine", record: TransitionRecord, event_args: Sequence[Any] = ()) -> None:
        """
        :param machine: The machine the transition belongs to.
        :param record: The compiled record being performed.
        :param event_args: Arguments passed to every callback.
        """
        self._machine = machine
        self._record = record
        self._event_args = tuple(event_args)
        self._status = TransitionStatus.PENDING
        self._is_resolving: Optional[bool] = None
        self._is_rejected: Optional[bool] = None
        self._is_aborted = False
        self._task: Optional[asyncio.Task] = None
        self.resolutions: PhaseOutcomes = {}
        self.rejections: PhaseOutcomes = {}
        self.rejection: Optional[BaseException] = None

    @property
    def machine(self) -> "Machine":
        return self._machine

    @property
    def target(self) -> Any:
        return self._machine.target

    @property
    def record(self) -> TransitionRecord:
        return self._record

    @property
    def event(self) -> EventName:
        return self._record.event

    @property
    def from_state(self) -> StateName:
        return self._record.from_state

    @property
    def to_state(self) -> StateName:
        return self._record.to_state

    @property
    def is_guarded(self) -> bool:
        return self._record.is_guarded

    @property
    def do_if(self) -> Optional[str]:
        return self._record.do_if

    @property
    def do_unless(self) -> Optional[str]:
        return self._record.do_unless

    @property
    def event_args(self) -> Tuple[Any, ...]:
        return self._event_args

    @property
    def status(self) -> TransitionStatus:
        return self._status

    @property
    def is_resolving(self) -> Optional[bool]:
        """None before ``perform()``, True while phases run, False once settled."""
        return self._is_resolving

    @property
    def is_rejected(self) -> Optional[bool]:
        """None before settlement, then whether any phase rejected."""
        return self._is_rejected

    @property
    def is_aborted(self) -> bool:
        return self._is_aborted

    @property
    def task(self) -> Optional[asyncio.Task]:
        """The task created by ``perform()``, or None if it has not been performed."""
        return self._task

    def callbacks_for(self, phase: PhaseName) -> List[CallbackDescriptor]:
        """
        Gather the callbacks to run for ``phase``.

        Callbacks declared on the transition come first, followed (for enter and
        exit phases) by the hooks of the state being entered or exited.

        :param phase: One of PHASES.
        :return: Descriptors in enumeration order.
        :raises ValueError: If ``phase`` is not a transition phase.
        :raises CallbackLookupError: If a named callback is missing or not callable.
        """
        if phase not in PHASES:
            raise ValueError(f'unknown transition phase "{phase}", expected one of {", ".join(PHASES)}')

        sources = [(VIA_TRANSITION, self._record.callbacks(phase), f'transition "{self._describe()}"')]
        if phase in ENTER_PHASES or phase in EXIT_PHASES:
            state_name = self.to_state if phase in ENTER_PHASES else self.from_state
            state = self._machine.definition.lookup_state(state_name)
            sources.append((VIA_STATE, state.callbacks(phase), f'state "{state_name}"'))

        descriptors = []
        for source_index, (via, identifiers, owner) in enumerate(sources):
            for index, identifier in enumerate(identifiers):
                if callable(identifier):
                    descriptors.append(CallbackDescriptor(via, f"_inline:{source_index}-{index}_", identifier))
                else:
                    descriptors.append(CallbackDescriptor(via, identifier, self._lookup_callback(identifier, owner)))
        return descriptors

    async def callback(self, phase: PhaseName) -> Dict[str, Any]:
        """
        Run every callback of ``phase`` concurrently with the event arguments.

        Each outcome is recorded under its key in ``resolutions[phase]`` or
        ``rejections[phase]``. Once every callback has settled, the last
        rejection in enumeration order is raised, if there is one.

        :return: The resolutions recorded for ``phase``.
        """
        descriptors = self.callbacks_for(phase)
        resolutions = self.resolutions.setdefault(phase, {})
        rejections = self.rejections.setdefault(phase, {})

        futures = [with_promise(descriptor.fn, *self._event_args) for descriptor in descriptors]
        outcomes = await asyncio.gather(*futures, return_exceptions=True)

        rejection: Optional[BaseException] = None
        for descriptor, outcome in zip(descriptors, outcomes):
            if isinstance(outcome, BaseException):
                rejections.setdefault(descriptor.key, outcome)
                rejection = outcome
            else:
                resolutions[descriptor.key] = outcome

        if rejection is not None:
            logger.debug("Phase %s of %s rejected with %r", phase, self, rejection)
            raise rejection
        return resolutions

    def perform(self) -> "asyncio.Task[Transition]":
        """
        Start running the phases and return the task doing so. Calling
        ``perform()`` again returns the same task.

        The task resolves to this Transition, or is rejected with the
        rejection of the first phase that failed; later phases are skipped.

        :raises RuntimeError: If no event loop is running.
        """
        if self._task is None:
            loop = asyncio.get_running_loop()
            self._task = loop.create_task(self._run())
            self._is_resolving = True
            if not self._is_aborted:
                self._status = TransitionStatus.RESOLVING
        return self._task

    async def _run(self) -> "Transition":
        try:
            for phase in PHASES:
                logger.debug("Running phase %s of %s", phase, self)
                await self.callback(phase)
        except asyncio.CancelledError:
            logger.warning("%s was cancelled while resolving", self)
            self._is_resolving = False
            raise
        except Exception as error:
            self.rejection = error
            self._settle(TransitionStatus.REJECTED)
            raise
        self._settle(TransitionStatus.RESOLVED)
        return self

    def _settle(self, status: TransitionStatus) -> None:
        self._is_resolving = False
        self._is_rejected = status is TransitionStatus.REJECTED
        if not self._is_aborted:
            self._status = status

    def abort(self) -> None:
        """
        Mark the transition as aborted. Its task is left running and settles on
        its own; the machine simply stops treating it as active.
        """
        if not self._is_aborted:
            logger.warning("Aborting %s", self)
        self._is_aborted = True
        self._status = TransitionStatus.ABORTED

    def _lookup_callback(self, name: str, owner: str) -> CallbackFunc:
        try:
            fn = self._machine.target.get_callback(name)
        except LookupError:
            raise CallbackLookupError(f'Callback "{name}" on target is not defined, required by {owner}') from None
        if not callable(fn):
            raise CallbackLookupError(f'Callback "{name}" on target is not callable, required by {owner}')
        return fn

    def _describe(self) -> str:
        return f"{self.event}: {self.from_state} -> {self.to_state}"

    def __repr__(self) -> str:
        return f"Transition({self._describe()!r}, status={self._status.name})"
