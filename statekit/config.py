# statekit/config.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

"""Load machine definitions from YAML or JSON files."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

import yaml

from statekit.core.errors import DefinitionError
from statekit.core.machine import Machine
from statekit.core.utils import is_object

logger = logging.getLogger(__name__)

YAML_SUFFIXES = frozenset((".yaml", ".yml"))
JSON_SUFFIXES = frozenset((".json",))


def _normalize_path(path: Union[Path, str]) -> Path:
    return path if isinstance(path, Path) else Path(path)


def load_spec(path: Union[Path, str]) -> Dict[str, Any]:
    """
    Read a definition spec (a mapping with ``events`` and optionally ``states``)
    from a ``.yaml``/``.yml`` or ``.json`` file.

    :raises FileNotFoundError: If the file does not exist.
    :raises ValueError: If the file extension is not supported.
    :raises DefinitionError: If the document is not a mapping.
    """
    spec_path = _normalize_path(path)
    if not spec_path.exists():
        raise FileNotFoundError(f"Definition file not found at {spec_path}")

    suffix = spec_path.suffix.lower()
    with spec_path.open("r", encoding="utf-8") as stream:
        if suffix in YAML_SUFFIXES:
            raw = yaml.safe_load(stream)
        elif suffix in JSON_SUFFIXES:
            raw = json.load(stream)
        else:
            raise ValueError(f"Unsupported definition format: {suffix}")

    if not is_object(raw):
        raise DefinitionError(f"{spec_path} must contain a mapping with an events section")
    logger.debug("Loaded definition spec from %s", spec_path)
    return raw


def machine_from_file(path: Union[Path, str], **kwargs: Any) -> Machine:
    """
    Build a Machine from a definition file.

    :param path: The YAML or JSON file to read.
    :param kwargs: Keyword arguments for Machine (``target``, ``initial_state``, ``hooks``).
    """
    spec = load_spec(path)
    return Machine(spec.get("events"), spec.get("states"), **kwargs)
