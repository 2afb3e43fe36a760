# statekit/runtime/targets.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from typing import Any, Mapping

from statekit.core.utils import is_object
from statekit.interfaces.protocols import Target


class ObjectTarget:
    """
    Adapts an arbitrary Python object to the Target protocol. Guards and
    callbacks are read as attributes, so bound methods, properties and plain
    attributes all work.
    """

    def __init__(self, obj: Any) -> None:
        """
        :param obj: The host object supplying guards and callbacks.
        """
        self._obj = obj

    @property
    def obj(self) -> Any:
        """The wrapped host object."""
        return self._obj

    def read_guard(self, name: str) -> Any:
        return self._read(name)

    def get_callback(self, name: str) -> Any:
        return self._read(name)

    def _read(self, name: str) -> Any:
        try:
            return getattr(self._obj, name)
        except AttributeError:
            raise LookupError(name) from None

    def __repr__(self) -> str:
        return f"ObjectTarget({self._obj!r})"


class MappingTarget:
    """
    Adapts a mapping of names to values and callables to the Target protocol.
    A key stored with the value None is defined (and falsy as a guard).
    """

    def __init__(self, members: Mapping[str, Any]) -> None:
        """
        :param members: Mapping of guard and callback names to their values.
        """
        self._members = members

    def read_guard(self, name: str) -> Any:
        return self._members[name]

    def get_callback(self, name: str) -> Any:
        return self._members[name]

    def __repr__(self) -> str:
        return f"MappingTarget({sorted(self._members)!r})"


def resolve_target(obj: Any) -> Target:
    """
    Return a Target for ``obj``: protocol implementations are used as-is,
    mappings are wrapped in MappingTarget and anything else in ObjectTarget.
    """
    if isinstance(obj, Target):
        return obj
    if is_object(obj):
        return MappingTarget(obj)
    return ObjectTarget(obj)
