"""Service-name canonicalization for free-text invoice line descriptions.

Descriptions such as ``"Azure Consumption - CSP-NCElineItemCharges 8/1/2025-8/31/2025"``
and ``"Azure Consumption - CSP - NCELineItemCharges Aug 2025"`` must collapse to
one catalog name so that repeated imports aggregate into the same service.
The rewrites live in ``config/canonical_rules.yaml`` as an ordered table.
"""

from __future__ import annotations

import re

from vendor_ledger.config.rules import CanonicalRule, load_canonical_rules

_WHITESPACE = re.compile(r"\s+")
_EDGE_PUNCTUATION = re.compile(r"^[\s\-:]+|[\s\-:]+$")

# Rewrites can expose new matches for earlier rules; stop once stable.
MAX_PASSES = 5


def _apply(rules: tuple[CanonicalRule, ...], text: str) -> str:
    for rule in rules:
        text = rule.apply(text)
    return text


def _tidy(text: str) -> str:
    collapsed = _WHITESPACE.sub(" ", text).strip()
    return _EDGE_PUNCTUATION.sub("", collapsed)


def strip_dates(text: str) -> str:
    """Remove embedded dates, date ranges and service-period suffixes."""
    if not text:
        return ""
    rules = load_canonical_rules()
    return _tidy(_apply(rules.date_rules, text))


def canonicalize_service_name(text: str) -> str:
    """Normalize a line description into its canonical service name.

    Idempotent: ``canonicalize_service_name(canonicalize_service_name(d))``
    equals ``canonicalize_service_name(d)``.
    """
    if not text:
        return ""

    rules = load_canonical_rules()
    current = text
    for _ in range(MAX_PASSES):
        rewritten = _tidy(_apply(rules.name_rules, strip_dates(current)))
        if rewritten == current:
            break
        current = rewritten
    return current


def normalize_for_matching(name: str) -> str:
    """Lower-cased, whitespace-collapsed key for comparing service names."""
    return _WHITESPACE.sub(" ", name or "").strip().lower()
