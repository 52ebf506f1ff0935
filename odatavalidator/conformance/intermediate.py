"""
Intermediate conformance level rules (OData Protocol section 13.1.2).
"""

from odatavalidator.engine.compose import compose
from odatavalidator.engine.rules import CompositeRule, IntermediateConformanceRule
from odatavalidator.engine.types import (
    CombinationPolicy,
    DependencyInfo,
    DependencyType,
    Outcome,
    RequirementLevel,
    RuleRelationship,
)
from odatavalidator.service.context import ServiceContext

from .helpers import (
    verify_error,
    verify_feed_and_entry,
    verify_metadata,
    verify_service_document,
)


class I1001_MinimalConformance(CompositeRule, IntermediateConformanceRule):
    """1. Fails when a MUST rule of the Minimal level fails; weaker failures are warnings."""

    @property
    def name(self) -> str:
        return "Intermediate.Conformance.1001"

    @property
    def description(self) -> str:
        return "1. MUST conform to the OData Minimal Conformance Level"

    @property
    def dependency_info(self) -> DependencyInfo:
        return DependencyInfo(CombinationPolicy.ALL_MINIMAL, RuleRelationship.DERIVED_RULE)


class I1009_JsonFormat(IntermediateConformanceRule):
    """
    9. SHOULD support the JSON format.

    Four independent probes (service document, metadata, error response,
    feed and entry) are all run; their details are merged under this rule.
    """

    @property
    def name(self) -> str:
        return "Intermediate.Conformance.1009"

    @property
    def description(self) -> str:
        return "9. SHOULD support the [OData-JSON] format."

    @property
    def requirement_level(self) -> RequirementLevel:
        return RequirementLevel.SHOULD

    @property
    def dependency_type(self) -> DependencyType:
        return DependencyType.DEPENDENCY

    def verify(self, context: ServiceContext) -> Outcome:
        self._require_context(context)
        return compose(self.name, [
            verify_service_document(context),
            verify_metadata(context),
            verify_error(context),
            verify_feed_and_entry(context),
        ])


def get_intermediate_rules():
    """Return the Intermediate conformance level rules in catalog order."""
    return [
        I1001_MinimalConformance(),
        I1009_JsonFormat(),
    ]
