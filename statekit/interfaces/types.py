# statekit/interfaces/types.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details
from typing import Any, Callable, Dict, Mapping, Union

StateName = str
EventName = str
PhaseName = str

# A callback is declared either by the name of a target member or inline.
CallbackFunc = Callable[..., Any]
CallbackIdentifier = Union[str, CallbackFunc]

# Raw, user supplied definition documents.
RawSpec = Mapping[str, Any]

# phase -> callback key -> value
PhaseOutcomes = Dict[PhaseName, Dict[str, Any]]

StateFlag = Callable[[], bool]
