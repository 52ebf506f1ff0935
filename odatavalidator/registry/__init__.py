"""Registry of conformance rules."""

from .rules import (
    DuplicateRuleError,
    RuleGraphError,
    RuleNotApplicableError,
    RuleNotFoundError,
    RuleRegistry,
)

__all__ = [
    "DuplicateRuleError",
    "RuleGraphError",
    "RuleNotApplicableError",
    "RuleNotFoundError",
    "RuleRegistry",
]
