"""
Rule Registry

Rules are registered explicitly at startup; nothing is discovered by
reflection and nothing is process-global. A registry is built per job
(or shared read-only between jobs) from ``get_all_rules()``.

The registry provides:
- Rule lookup by name
- Rule selection by conformance level, service type and name
- Child resolution for composite rules, per combination policy
- Rule graph validation (self-reference, unknown reference, cycles)
- Dependency-respecting execution order
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Set

from odatavalidator.engine.rules import Rule
from odatavalidator.engine.types import (
    CombinationPolicy,
    ConformanceLevel,
    RequirementLevel,
    ServiceType,
)

logger = logging.getLogger(__name__)

# Only failures at these requirement levels fail a level aggregate
AGGREGATE_REQUIREMENT_LEVELS = (RequirementLevel.MUST, RequirementLevel.MUST_NOT)

_AGGREGATE_LEVELS = {
    CombinationPolicy.ALL_MINIMAL: ConformanceLevel.MINIMAL,
    CombinationPolicy.ALL_INTERMEDIATE: ConformanceLevel.INTERMEDIATE,
}


class RuleNotFoundError(Exception):
    """Raised when a referenced rule cannot be resolved."""

    def __init__(self, name: str, referenced_by: Optional[str] = None):
        self.name = name
        self.referenced_by = referenced_by
        msg = f"Rule not found: {name}"
        if referenced_by:
            msg += f" (referenced by: {referenced_by})"
        super().__init__(msg)


class DuplicateRuleError(Exception):
    """Raised when two rules are registered under the same name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Rule already registered: {name}")


class RuleNotApplicableError(ValueError):
    """Raised when a rule named explicitly does not apply to the service type."""

    def __init__(self, names: List[str], service_type: ServiceType):
        self.names = names
        self.service_type = service_type
        super().__init__(
            f"Rule(s) not applicable to a {service_type.value} service: " + ", ".join(names)
        )


class RuleGraphError(ValueError):
    """
    Raised when the dependency graph of the registered rules is invalid.

    A bad graph is a catalog configuration error, reported before any
    rule runs rather than discovered as infinite recursion mid-job.
    """

    def __init__(self, errors: List[str]):
        self.errors = errors
        msg = "Rule graph failed validation:\n- " + "\n- ".join(errors)
        super().__init__(msg)


def is_level_aggregate(rule: Rule) -> bool:
    """True for composites that aggregate a whole conformance level."""
    info = rule.dependency_info
    return info is not None and info.policy in _AGGREGATE_LEVELS


def applies_to(rule: Rule, service_type: Optional[ServiceType]) -> bool:
    """Read-write rules do not apply to read-only services."""
    if service_type is None or rule.service_type is None:
        return True
    if service_type == ServiceType.READ_WRITE:
        return True
    return rule.service_type == service_type


class RuleRegistry:
    """
    Central registry of conformance rules.

    Usage:
        registry = RuleRegistry(get_all_rules())
        registry.validate()
        rules = registry.select(levels=[ConformanceLevel.MINIMAL])
    """

    def __init__(self, rules: Optional[Iterable[Rule]] = None) -> None:
        self._rules: Dict[str, Rule] = {}
        for rule in rules or ():
            self.register(rule)

    def register(self, rule: Rule) -> None:
        """
        Register a rule.

        Raises:
            DuplicateRuleError: If a rule with the same name exists.
        """
        if rule.name in self._rules:
            raise DuplicateRuleError(rule.name)
        self._rules[rule.name] = rule

    def resolve(self, name: str) -> Rule:
        """
        Resolve a rule name to its rule.

        Raises:
            RuleNotFoundError: If no rule has that name.
        """
        try:
            return self._rules[name]
        except KeyError:
            raise RuleNotFoundError(name) from None

    def exists(self, name: str) -> bool:
        return name in self._rules

    def names(self) -> List[str]:
        """Rule names in registration order."""
        return list(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules.values())

    def __contains__(self, name: object) -> bool:
        return name in self._rules

    # =========================================================================
    # DEPENDENCIES
    # =========================================================================

    def child_names(
        self,
        rule: Rule,
        service_type: Optional[ServiceType] = None,
    ) -> List[str]:
        """
        Names of the rules a composite rule is derived from, in order.

        ALL_PASS children are the declared names. Level aggregates are
        every rule of that level, composites included, that applies to the
        service type. Skipped rules are not part of the aggregate.
        """
        info = rule.dependency_info
        if not rule.is_composite or info is None:
            return []

        level = _AGGREGATE_LEVELS.get(info.policy)
        if level is None:
            return list(info.rule_names)

        return [
            candidate.name
            for candidate in self._rules.values()
            if candidate.level == level
            and not candidate.is_skipped
            and applies_to(candidate, service_type)
            and candidate.name != rule.name
        ]

    def children_of(
        self,
        rule: Rule,
        service_type: Optional[ServiceType] = None,
    ) -> List[Rule]:
        """
        Resolve the children of a composite rule.

        Raises:
            RuleNotFoundError: If a declared child is not registered.
        """
        children = []
        for name in self.child_names(rule, service_type):
            if name not in self._rules:
                raise RuleNotFoundError(name, referenced_by=rule.name)
            children.append(self._rules[name])
        return children

    def validate(self) -> None:
        """
        Validate the rule graph.

        Checks that no composite references itself, that every referenced
        rule is registered, and that the graph has no cycles.

        Raises:
            RuleGraphError: Listing every problem found.
        """
        errors: List[str] = []

        for rule in self._rules.values():
            info = rule.dependency_info
            if info is None:
                continue
            if rule.name in info.rule_names:
                errors.append(f"{rule.name}: references itself.")
            for name in info.rule_names:
                if name != rule.name and name not in self._rules:
                    errors.append(f"{rule.name}: references unknown rule {name}.")

        for cycle in self._find_cycles():
            errors.append("Dependency cycle: " + " -> ".join(cycle))

        if errors:
            raise RuleGraphError(errors)

    def _known_children(self, rule: Rule) -> List[str]:
        return [
            name for name in self.child_names(rule)
            if name in self._rules and name != rule.name
        ]

    def _find_cycles(self) -> List[List[str]]:
        """Depth-first search for back edges, one cycle reported per back edge."""
        cycles: List[List[str]] = []
        visiting: List[str] = []
        done: Set[str] = set()

        def visit(name: str) -> None:
            visiting.append(name)
            for child in self._known_children(self._rules[name]):
                if child in visiting:
                    cycles.append(visiting[visiting.index(child):] + [child])
                elif child not in done:
                    visit(child)
            visiting.pop()
            done.add(name)

        for name in self._rules:
            if name not in done:
                visit(name)
        return cycles

    # =========================================================================
    # SELECTION AND ORDERING
    # =========================================================================

    def select(
        self,
        levels: Optional[Sequence[ConformanceLevel]] = None,
        service_type: Optional[ServiceType] = None,
        names: Optional[Sequence[str]] = None,
    ) -> List[Rule]:
        """
        Select the rules to run, in registration order.

        Explicit ``names`` take precedence over ``levels``. The rules a
        selected composite depends on are pulled in even when they would
        not have been selected on their own.

        Raises:
            RuleNotFoundError: If an explicit name is not registered.
            RuleNotApplicableError: If an explicit name does not apply to
                the service type.
        """
        if names:
            selected = [self.resolve(name) for name in names]
            dropped = [rule.name for rule in selected if not applies_to(rule, service_type)]
            if dropped:
                logger.warning("Requested rule(s) do not apply to a %s service: %s",
                               service_type.value, ", ".join(dropped))
                raise RuleNotApplicableError(dropped, service_type)
        else:
            selected = [
                rule for rule in self._rules.values()
                if levels is None or rule.level in levels
            ]
            selected = [rule for rule in selected if applies_to(rule, service_type)]

        wanted: Set[str] = set()
        pending = [rule.name for rule in selected]
        while pending:
            name = pending.pop()
            if name in wanted:
                continue
            wanted.add(name)
            for child in self.children_of(self.resolve(name), service_type):
                pending.append(child.name)

        return [rule for rule in self._rules.values() if rule.name in wanted]

    def execution_order(
        self,
        rules: Iterable[Rule],
        service_type: Optional[ServiceType] = None,
    ) -> List[Rule]:
        """
        Order rules so that every rule comes after the rules it depends on.

        Ties keep registration order.

        Raises:
            RuleGraphError: If the rules form a dependency cycle.
        """
        ordered: List[Rule] = []
        placed: Set[str] = set()
        visiting: List[str] = []

        def place(rule: Rule) -> None:
            if rule.name in placed:
                return
            if rule.name in visiting:
                cycle = visiting[visiting.index(rule.name):] + [rule.name]
                raise RuleGraphError(["Dependency cycle: " + " -> ".join(cycle)])
            visiting.append(rule.name)
            for child in self.children_of(rule, service_type):
                place(child)
            visiting.pop()
            placed.add(rule.name)
            ordered.append(rule)

        requested = {rule.name for rule in rules}
        for rule in self._rules.values():
            if rule.name in requested:
                place(rule)
        return ordered
