"""
Accessibility violation detection.

A detector runs in two steps so the worker can report progress between them:
`environment()` prepares an isolated document for one job, `run()` evaluates
the WCAG A/AA rules against it. Each job gets its own environment and the
environment is torn down when the `with` block exits, whether the run
succeeded or not. Nothing is shared between concurrent jobs.
"""
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping

from app.features.scan.exceptions import DetectorError
from app.features.scan.schemas.scan import IMPACT_LEVELS, Violation

# Rule tags equivalent to WCAG 2.x level A + AA
WCAG_RULE_TAGS = ("wcag2a", "wcag2aa")


class ViolationDetector(ABC):
    tags = WCAG_RULE_TAGS

    @contextmanager
    def environment(self, markup: str, url: str) -> Iterator[Any]:
        """Yield a per-job document handle. Default: the raw markup."""
        yield markup

    @abstractmethod
    def run(self, environment: Any, url: str) -> List[Dict[str, Any]]:
        """Return the raw violation entries found in `environment`."""

    def detect(self, markup: str, url: str) -> List[Violation]:
        with self.environment(markup, url) as env:
            return normalize_violations(self.run(env, url))


def normalize_violation(raw: Mapping[str, Any]) -> Violation:
    """
    Convert one loosely-shaped detector entry into a `Violation`.

    Accepts axe-core output (`id`, `help`, `nodes` list) as well as entries
    already using our field names (`ruleId`, `helpText`, `affectedElementCount`).
    """
    if not isinstance(raw, Mapping):
        raise DetectorError(f"Detector returned a malformed violation: {raw!r}")

    rule_id = raw.get("id") or raw.get("ruleId") or raw.get("rule_id")
    if not rule_id:
        raise DetectorError(f"Detector returned a violation without a rule id: {dict(raw)!r}")

    impact = raw.get("impact") or "unknown"
    if impact not in IMPACT_LEVELS:
        impact = "unknown"

    nodes = raw.get("nodes")
    if isinstance(nodes, (list, tuple)):
        count = len(nodes)
    elif isinstance(nodes, int):
        count = nodes
    else:
        count = raw.get("affectedElementCount", raw.get("affected_element_count", 0)) or 0

    return Violation(
        rule_id=str(rule_id),
        impact=impact,
        description=raw.get("description") or "",
        help_text=raw.get("help") or raw.get("helpText") or raw.get("help_text"),
        help_url=raw.get("helpUrl") or raw.get("help_url"),
        affected_element_count=max(int(count), 0),
    )


def normalize_violations(raw_violations: Any) -> List[Violation]:
    """Normalize in the detector's native order."""
    if raw_violations is None:
        return []
    if not isinstance(raw_violations, (list, tuple)):
        raise DetectorError(f"Detector returned {type(raw_violations).__name__}, expected a list")
    return [normalize_violation(raw) for raw in raw_violations]
