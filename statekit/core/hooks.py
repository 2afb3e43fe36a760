# statekit/core/hooks.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING, Any, Iterable, List, Optional

from statekit.interfaces.protocols import Hook
from statekit.interfaces.types import StateName

if TYPE_CHECKING:
    from statekit.core.transition import Transition

logger = logging.getLogger(__name__)


class HookManager:
    """
    Manages the registration and execution of hooks that observe a machine:
    state commits (on_state_change) and rejected transitions (on_error). Users
    can attach logging, monitoring or projections without touching the engine.

    Hooks are notified in registration order and only through the methods
    they define. Hook methods are synchronous; coroutine functions are skipped.
    """

    def __init__(self, hooks: Optional[Iterable[Hook]] = None) -> None:
        """
        :param hooks: Optional initial hook objects.
        """
        self._hooks: List[Hook] = list(hooks or [])

    @property
    def hooks(self) -> List[Hook]:
        return list(self._hooks)

    def register_hook(self, hook: Hook) -> None:
        """
        Add a new hook to the manager's list of hooks.

        :param hook: An object implementing some of the Hook protocol methods.
        """
        self._hooks.append(hook)

    def execute_on_state_change(self, previous: Optional[StateName], current: StateName) -> None:
        for hook in self._hooks:
            self._invoke(hook, "on_state_change", previous, current)

    def execute_on_error(self, error: BaseException, transition: "Transition") -> None:
        for hook in self._hooks:
            self._invoke(hook, "on_error", error, transition)

    @staticmethod
    def _invoke(hook: Hook, method: str, *args: Any) -> None:
        """
        Call ``method`` on ``hook`` if it defines a synchronous one. A raising
        hook is logged and never stops the hooks after it or the machine.
        """
        fn = getattr(hook, method, None)
        if fn is None or inspect.iscoroutinefunction(fn):
            return
        try:
            fn(*args)
        except Exception:
            logger.exception("Hook %r raised in %s", hook, method)

    def __len__(self) -> int:
        return len(self._hooks)
