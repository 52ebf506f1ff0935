"""
Rule catalog.

Every shipped rule is listed here explicitly. The order of this list is
the registration order, which is also the order results are reported in
when dependencies do not force otherwise.
"""

from typing import List

from odatavalidator.engine.rules import Rule
from odatavalidator.registry.rules import RuleRegistry

from .advanced import get_advanced_rules
from .intermediate import get_intermediate_rules
from .minimal import get_minimal_rules


def get_all_rules() -> List[Rule]:
    """Return all conformance rules in catalog order."""
    return get_minimal_rules() + get_intermediate_rules() + get_advanced_rules()


def build_registry() -> RuleRegistry:
    """
    Register the full catalog and validate its dependency graph.

    Raises:
        DuplicateRuleError: If two rules share a name.
        RuleGraphError: If a composite rule references itself, an unknown
            rule, or takes part in a cycle.
    """
    registry = RuleRegistry(get_all_rules())
    registry.validate()
    return registry
