"""
Device-type rule store.

Rules live in a YAML document with a single top-level list:

    device_types:
      - type: apple
        mac_prefixes: ["ac:bc:32", "fc:fb:fb"]
        hostname_keywords: ["iphone", "ipad", "macbook"]
      - type: windows
        mac_prefixes: ["3c:5a:b4"]
        hostname_keywords: ["desktop", "win"]

The file is read from disk on every call so that edits take effect on the
next discovery cycle without a restart. Nothing is cached here.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Union

import yaml

from ._types import DeviceTypeRule, RuleSet

logger = logging.getLogger(__name__)


class RuleSourceError(Exception):
    """The rule file could not be read or does not have the expected shape."""


class _RuleLoader(yaml.SafeLoader):
    """SafeLoader that keeps plain scalars as strings (only null is resolved)."""


# YAML 1.1 would read 28:12:44 as a base-60 int and on/yes as booleans
_RuleLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag == "tag:yaml.org,2002:null"]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def load_rules(path: Union[str, Path]) -> RuleSet:
    """
    Read and parse the rule file at path.

    Raises:
        RuleSourceError: file missing/unreadable, invalid YAML or bad shape
    """
    path = Path(path)
    try:
        with open(path) as f:
            document = yaml.load(f, Loader=_RuleLoader)
    except OSError as e:
        raise RuleSourceError(f"Cannot read rule file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise RuleSourceError(f"Invalid YAML in rule file {path}: {e}") from e

    rules = parse_rules(document)
    rules.source = str(path)
    logger.debug(f"Loaded {len(rules)} device type rules from {path}")
    return rules


def parse_rules(document: Any) -> RuleSet:
    """
    Build a RuleSet from an already-decoded document.

    An empty document (or one without device_types) is a valid, empty rule set.
    """
    if document is None:
        return RuleSet()
    if not isinstance(document, dict):
        raise RuleSourceError(
            f"Rule document must be a mapping, got {type(document).__name__}"
        )

    entries = document.get("device_types") or []
    if not isinstance(entries, list):
        raise RuleSourceError("'device_types' must be a list")

    rules = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise RuleSourceError(f"device_types[{index}] must be a mapping")
        try:
            rules.append(DeviceTypeRule(
                type_label=str(entry.get("type") or ""),
                mac_prefixes=_string_list(entry, "mac_prefixes", index),
                hostname_keywords=_string_list(entry, "hostname_keywords", index),
            ))
        except ValueError as e:
            raise RuleSourceError(f"device_types[{index}]: {e}") from e

    return RuleSet(rules=rules)


def _string_list(entry: dict, key: str, index: int) -> list[str]:
    values = entry.get(key) or []
    if not isinstance(values, list):
        raise RuleSourceError(f"device_types[{index}].{key} must be a list")
    for value in values:
        if not isinstance(value, str):
            raise RuleSourceError(
                f"device_types[{index}].{key} entries must be strings, "
                f"got {type(value).__name__} {value!r}"
            )
    return values
