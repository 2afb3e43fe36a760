# statekit/core/utils.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import asyncio
import inspect
import re
from typing import Any, Callable, Iterable, List, Mapping, Optional

_WORD_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_SEPARATORS = re.compile(r"[\s.\-_]+")


def is_thenable(value: Any) -> bool:
    """
    Return True if ``value`` can be awaited (coroutines, futures, tasks and any
    object implementing ``__await__``).
    """
    return inspect.isawaitable(value)


def is_object(value: Any) -> bool:
    """
    Return True for mapping objects. Lists, strings, scalars and None are not
    considered objects.
    """
    return isinstance(value, Mapping)


def to_list(value: Any) -> List[Any]:
    """
    Wrap ``value`` in a list. None becomes an empty list and lists or tuples are
    copied rather than nested.

    :param value: A scalar, a sequence of values, or None.
    :return: A new list.
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def get_first(mapping: Mapping[str, Any], keys: Iterable[str]) -> Optional[Any]:
    """
    Return the value of the first key in ``keys`` that is present in ``mapping``
    with a value other than None. Used to read options that have several aliases.
    """
    for key in keys:
        value = mapping.get(key)
        if value is not None:
            return value
    return None


def own_properties_of(mapping: Mapping[str, Any]) -> List[str]:
    """
    Return the keys of ``mapping`` whose values are not None, in insertion order.

    :raises TypeError: If ``mapping`` is not a mapping.
    """
    if not is_object(mapping):
        raise TypeError(f"expected a mapping but got {type(mapping).__name__}")
    return [key for key, value in mapping.items() if value is not None]


def underscore(text: str) -> str:
    """
    Convert dotted, dashed, spaced or camel-cased text to snake case.

    ``"hello.world"`` becomes ``"hello_world"`` and ``"big-funThings"`` becomes
    ``"big_fun_things"``.
    """
    text = _WORD_BOUNDARY.sub(r"\1_\2", text)
    return _SEPARATORS.sub("_", text).strip("_").lower()


def with_promise(fn: Callable[..., Any], *args: Any) -> "asyncio.Future[Any]":
    """
    Invoke ``fn`` and normalize its outcome into a future on the running loop.

    A plain return value resolves the future immediately, a raised exception
    rejects it immediately, and an awaitable is adopted as a task so it runs
    alongside any other pending work.

    :param fn: The callable to invoke.
    :param args: Positional arguments passed to ``fn``.
    :return: A future settled with the outcome of ``fn``.
    """
    loop = asyncio.get_running_loop()
    try:
        result = fn(*args)
    except Exception as error:
        future = loop.create_future()
        future.set_exception(error)
        return future

    if is_thenable(result):
        return asyncio.ensure_future(result)

    future = loop.create_future()
    future.set_result(result)
    return future
