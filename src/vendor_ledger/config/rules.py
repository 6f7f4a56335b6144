"""Canonicalization rule table loader."""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

RULES_PATH = Path(__file__).resolve().parent / "canonical_rules.yaml"


@dataclass(frozen=True)
class CanonicalRule:
    """A single ordered (pattern, replacement) rewrite."""

    name: str
    pattern: re.Pattern[str]
    replacement: str

    def apply(self, text: str) -> str:
        return self.pattern.sub(self.replacement, text)


@dataclass(frozen=True)
class CanonicalRuleSet:
    """Date-stripping rules followed by name-normalization rules."""

    date_rules: tuple[CanonicalRule, ...]
    name_rules: tuple[CanonicalRule, ...]


def _parse_rule(item: Any) -> CanonicalRule:
    if not isinstance(item, dict):
        raise ValueError("canonical rule must be a mapping")

    name = item.get("name")
    pattern = item.get("pattern")
    if not isinstance(name, str) or not name:
        raise ValueError("canonical rule missing name")
    if not isinstance(pattern, str) or not pattern:
        raise ValueError(f"canonical rule {name!r} missing pattern")

    replacement = item.get("replacement", "")
    if not isinstance(replacement, str):
        raise ValueError(f"canonical rule {name!r} replacement must be a string")

    flags = re.IGNORECASE if item.get("ignore_case") else 0
    try:
        compiled = re.compile(pattern, flags)
    except re.error as exc:
        raise ValueError(f"canonical rule {name!r} has invalid pattern: {exc}") from exc

    return CanonicalRule(name=name, pattern=compiled, replacement=replacement)


def parse_rule_set(data: Any) -> CanonicalRuleSet:
    """Build a rule set from parsed YAML data."""
    if not isinstance(data, dict):
        raise ValueError("canonical rules file must be a mapping")

    groups: dict[str, tuple[CanonicalRule, ...]] = {}
    for key in ("date_rules", "name_rules"):
        raw = data.get(key) or []
        if not isinstance(raw, list):
            raise ValueError(f"{key} must be a list")
        groups[key] = tuple(_parse_rule(item) for item in raw)

    return CanonicalRuleSet(
        date_rules=groups["date_rules"],
        name_rules=groups["name_rules"],
    )


@lru_cache
def load_canonical_rules() -> CanonicalRuleSet:
    """Load canonicalization rules from the packaged YAML file."""
    raw = RULES_PATH.read_text(encoding="utf-8")
    return parse_rule_set(yaml.safe_load(raw))
