"""
Rule-based device classification.

Rules are evaluated in file order. Within a rule the MAC prefixes are tried
before the hostname keywords, each list in declared order, and the first
matcher that hits decides the label. This is first-match, not best-match:
a later, more specific rule never overrides an earlier one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from ._types import RuleSet, UNKNOWN_DEVICE_TYPE
from .rules import RuleSourceError, load_rules

logger = logging.getLogger(__name__)


@dataclass
class ClassificationResult:
    """Result of device classification."""
    device_type: str
    reason: str
    error: Optional[Exception] = None


def match_rules(
    mac_address: str,
    hostname: str,
    rules: RuleSet,
) -> Optional[ClassificationResult]:
    """
    Apply rules to a (mac, hostname) pair.

    Both inputs are lower-cased before comparison. Returns None when no
    rule matches.
    """
    mac_lower = (mac_address or "").lower()
    hostname_lower = (hostname or "").lower()

    for rule in rules:
        for prefix in rule.mac_prefixes:
            if mac_lower.startswith(prefix):
                return ClassificationResult(
                    device_type=rule.type_label,
                    reason=f"MAC prefix '{prefix}'",
                )
        for keyword in rule.hostname_keywords:
            if keyword in hostname_lower:
                return ClassificationResult(
                    device_type=rule.type_label,
                    reason=f"Hostname keyword '{keyword}'",
                )

    return None


def classify_device(
    mac_address: str,
    hostname: str,
    rules_path: Union[str, Path],
) -> ClassificationResult:
    """
    Classify a device against the rule file at rules_path.

    The rule file is re-read on every call. If it cannot be read or parsed
    the device is classified "unknown" and the error is returned alongside
    so the caller can still publish a degraded record.
    """
    try:
        rules = load_rules(rules_path)
    except RuleSourceError as e:
        return ClassificationResult(
            device_type=UNKNOWN_DEVICE_TYPE,
            reason="Rule file unavailable",
            error=e,
        )

    result = match_rules(mac_address, hostname, rules)
    if result is None:
        return ClassificationResult(
            device_type=UNKNOWN_DEVICE_TYPE,
            reason="No rule matched",
        )

    logger.debug(f"Classified {mac_address} / {hostname} as {result.device_type} ({result.reason})")
    return result
