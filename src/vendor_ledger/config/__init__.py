"""Configuration module for the vendor ledger engine."""

from vendor_ledger.config.logging import configure_logging
from vendor_ledger.config.rules import CanonicalRule, CanonicalRuleSet, load_canonical_rules
from vendor_ledger.config.settings import FlatSettings, get_settings

__all__ = [
    "FlatSettings",
    "get_settings",
    "configure_logging",
    "CanonicalRule",
    "CanonicalRuleSet",
    "load_canonical_rules",
]
