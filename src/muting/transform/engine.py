"""
Suffix rewrite engine.

``apply`` is a pure function: the same rules and value always produce the
same result, and it never raises.
"""

from muting.constants import SUFFIX_SEPARATOR
from muting.models.transform import TransformRule, TransformRules


def match_suffix(rule: TransformRule, value: str) -> str | None:
    """
    Find the first suffix of ``rule`` that terminates ``value``.

    A suffix only matches at a label boundary, i.e. when it is preceded by
    the separator: ``example.com`` matches ``svc.example.com`` but neither
    ``example.com`` itself nor ``svc.myexample.com``.

    Returns:
        The matching suffix, or None
    """
    for suffix in rule.from_:
        if suffix and value.endswith(SUFFIX_SEPARATOR + suffix):
            return suffix
    return None


def apply(rules: TransformRules | list[TransformRule], value: str) -> str:
    """
    Rewrite the trailing suffix of ``value`` using the first matching rule.

    Args:
        rules: Rules in declaration order
        value: String to rewrite, typically a host name

    Returns:
        ``value`` with its matched suffix replaced, or ``value`` unchanged
        when no rule matches
    """
    if not value:
        return value

    ordered = rules.transforms if isinstance(rules, TransformRules) else rules
    for rule in ordered:
        suffix = match_suffix(rule, value)
        if suffix is not None:
            return value[: -len(suffix)] + rule.to
    return value
