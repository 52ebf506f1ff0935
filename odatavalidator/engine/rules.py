"""
Rule base classes.

A rule is both a descriptor (name, requirement level, conformance level,
dependency declaration) and, for leaf rules, the verification logic that
probes the service and returns an Outcome.

Three kinds of rule exist:

- leaf rules override ``verify`` and return an Outcome built from probes
- ``CompositeRule`` declares ``dependency_info``; its verdict is derived
  by the runner from the rules it names
- ``SkipRule`` is declared in the catalog but never evaluated
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Iterable, Optional

from .types import (
    ConformanceLevel,
    DependencyInfo,
    DependencyType,
    Outcome,
    RequirementLevel,
    ResultDetail,
    ServiceType,
    Verdict,
)

if TYPE_CHECKING:
    from odatavalidator.service.context import ServiceContext


class Rule(ABC):
    """Base class for all conformance rules."""

    category: str = "conformance"

    @property
    @abstractmethod
    def name(self) -> str:
        """Globally unique dotted identifier, e.g. ``Minimal.Conformance.1001``."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """The conformance statement this rule checks."""
        ...

    @property
    def requirement_level(self) -> RequirementLevel:
        return RequirementLevel.MUST

    @property
    def level(self) -> Optional[ConformanceLevel]:
        return None

    @property
    def service_type(self) -> Optional[ServiceType]:
        """Service type the rule applies to; None means any."""
        return None

    @property
    def spec_section(self) -> Optional[str]:
        return None

    @property
    def error_message(self) -> str:
        return self.description

    @property
    def dependency_type(self) -> DependencyType:
        return DependencyType.NONE

    @property
    def dependency_info(self) -> Optional[DependencyInfo]:
        return None

    @property
    def is_composite(self) -> bool:
        """Verdict is wholly derived from other rules."""
        return self.dependency_type == DependencyType.DEPENDENCY and self.dependency_info is not None

    @property
    def is_skipped(self) -> bool:
        return self.dependency_type == DependencyType.SKIP

    @abstractmethod
    def verify(self, context: "ServiceContext") -> Outcome:
        """Probe the service and return the outcome."""
        ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"

    @staticmethod
    def _require_context(context: Any) -> None:
        if context is None:
            raise ValueError("context must not be None")

    def _detail(
        self,
        url: str = "",
        method: str = "",
        request_headers: str = "",
        response: Any = None,
        error: str = "",
        request_data: str = "",
    ) -> ResultDetail:
        """Helper to create a detail owned by this rule."""
        return ResultDetail.from_response(
            self.name, url, method, request_headers, response,
            error_message=error, request_data=request_data,
        )

    def _pass(self, *details: ResultDetail) -> Outcome:
        """Helper to create a passing outcome."""
        return Outcome(Verdict.PASS, tuple(details))

    def _fail(self, *details: ResultDetail) -> Outcome:
        """Helper to create a failing outcome. At least one detail must carry an error."""
        return Outcome(Verdict.FAIL, tuple(details))

    def _inconclusive(self, reason: str = "", *details: ResultDetail) -> Outcome:
        """Helper to create an inconclusive outcome with an optional explanation."""
        if reason:
            details = (ResultDetail(rule_name=self.name, error_message=reason),) + details
        return Outcome(Verdict.INCONCLUSIVE, tuple(details))

    def _outcome(self, verdict: Verdict, details: Iterable[ResultDetail]) -> Outcome:
        return Outcome(verdict, tuple(details))


class CompositeRule(Rule):
    """
    A rule whose verdict is derived from the rules named in ``dependency_info``.

    The runner never calls ``verify`` on a composite; it evaluates the
    children and composes their outcomes. Calling ``verify`` directly is
    an error.
    """

    @property
    def dependency_type(self) -> DependencyType:
        return DependencyType.DEPENDENCY

    @property
    @abstractmethod
    def dependency_info(self) -> DependencyInfo:
        ...

    def verify(self, context: "ServiceContext") -> Outcome:
        self._require_context(context)
        raise TypeError(
            f"{self.name} is a composite rule; its outcome is composed by the runner "
            "from the rules it depends on"
        )


class SkipRule(Rule):
    """A rule that is declared in the catalog but never probed."""

    @property
    def dependency_type(self) -> DependencyType:
        return DependencyType.SKIP

    def verify(self, context: "ServiceContext") -> Outcome:
        self._require_context(context)
        return Outcome(Verdict.INCONCLUSIVE)


# =============================================================================
# CONFORMANCE LEVEL BASES
# =============================================================================


class MinimalConformanceRule(Rule):
    """Base class for rules of the Minimal conformance level."""

    @property
    def level(self) -> ConformanceLevel:
        return ConformanceLevel.MINIMAL

    @property
    def spec_section(self) -> str:
        return "13.1.1"


class IntermediateConformanceRule(Rule):
    """Base class for rules of the Intermediate conformance level."""

    @property
    def level(self) -> ConformanceLevel:
        return ConformanceLevel.INTERMEDIATE

    @property
    def spec_section(self) -> str:
        return "13.1.2"


class AdvancedConformanceRule(Rule):
    """Base class for rules of the Advanced conformance level."""

    @property
    def level(self) -> ConformanceLevel:
        return ConformanceLevel.ADVANCED

    @property
    def spec_section(self) -> str:
        return "13.1.3"
