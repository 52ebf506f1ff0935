"""
Outcome composition.

Reduces the outcomes of several verification units into one:

- ``combine_verdicts`` applies a combination policy (three-valued AND)
- ``merge_details`` concatenates child details and re-tags the copies
- ``compose`` does both for a composite rule
- ``short_circuit`` runs dependent checks in sequence and stops at the
  first one that does not pass

Everything here is a pure function over immutable outcomes.
"""

import logging
from typing import Callable, Iterable, Optional, Sequence, Tuple

from .types import CombinationPolicy, Outcome, ResultDetail, Verdict

logger = logging.getLogger(__name__)


def combine_verdicts(
    verdicts: Iterable[Verdict],
    policy: CombinationPolicy = CombinationPolicy.ALL_PASS,
) -> Verdict:
    """
    Reduce child verdicts to one.

    ALL_PASS, ALL_MINIMAL and ALL_INTERMEDIATE share one truth table;
    they differ only in how the children are chosen:

        any FAIL            -> FAIL
        else any INCONCLUSIVE -> INCONCLUSIVE
        else (all PASS)     -> PASS

    No evidence is not a pass: an empty input is INCONCLUSIVE.
    """
    if not isinstance(policy, CombinationPolicy):
        raise ValueError(f"Unsupported combination policy: {policy!r}")

    seen_any = False
    uncertain = False
    for verdict in verdicts:
        seen_any = True
        if verdict == Verdict.FAIL:
            return Verdict.FAIL
        if verdict == Verdict.INCONCLUSIVE:
            uncertain = True

    if not seen_any or uncertain:
        return Verdict.INCONCLUSIVE
    return Verdict.PASS


def merge_details(owner: str, outcomes: Iterable[Outcome]) -> Tuple[ResultDetail, ...]:
    """
    Concatenate the details of ``outcomes`` in order, re-tagged to ``owner``.

    Details of inconclusive children are kept. Duplicates are kept.
    """
    merged = []
    for outcome in outcomes:
        merged.extend(detail.retag(owner) for detail in outcome.details)
    return tuple(merged)


def compose(
    owner: str,
    outcomes: Sequence[Outcome],
    policy: CombinationPolicy = CombinationPolicy.ALL_PASS,
) -> Outcome:
    """Build the outcome of composite rule ``owner`` from its children."""
    verdict = combine_verdicts((o.verdict for o in outcomes), policy)
    details = merge_details(owner, outcomes)
    logger.debug(
        "Composed %s from %d outcome(s) under %s: %s",
        owner, len(outcomes), policy.value, verdict.value,
    )
    return Outcome(verdict, details)


def short_circuit(
    checks: Iterable[Callable[[], Outcome]],
    owner: Optional[str] = None,
) -> Outcome:
    """
    Evaluate dependent checks in order, stopping at the first non-pass.

    A later check only runs once every earlier check has passed. When all
    pass, the last outcome is returned and its details replace those of
    the earlier checks.
    """
    outcome = None
    for check in checks:
        outcome = check()
        if not outcome.passed:
            break

    if outcome is None:
        outcome = Outcome(Verdict.INCONCLUSIVE)
    if owner is not None:
        outcome = outcome.owned_by(owner)
    return outcome
