"""Suffix rewrite engine and the sources that supply its rules."""

from .engine import apply, match_suffix
from .sources import ConfigMapRuleSource, FileRuleSource, RuleSource, parse_rules

__all__ = [
    "apply",
    "match_suffix",
    "ConfigMapRuleSource",
    "FileRuleSource",
    "RuleSource",
    "parse_rules",
]
