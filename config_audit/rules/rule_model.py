from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, FrozenSet, Iterable, Optional, Tuple

from config_audit.rules.predicates import Predicate

if TYPE_CHECKING:
    from config_audit.decision.tree import DecisionTree


@dataclass(frozen=True)
class DetectionRule:
    id: str
    domain: str
    target_patterns: Tuple[str, ...]
    predicate: Predicate
    severity: str
    message: str
    remediation: str = ""
    conflicts_with: FrozenSet[str] = frozenset()
    supersedes: FrozenSet[str] = frozenset()
    title: str = ""
    tags: Tuple[str, ...] = ()
    order: int = 0                  # declaration index within the catalog

    @property
    def scope(self) -> str:
        """Key of this rule's entries in the signal regex table."""
        return f"{self.domain}/{self.id}"


@dataclass(frozen=True)
class RuleCatalog:
    """Immutable, ordered rule set for one domain. Safe to share across threads and processes."""
    domain: str
    rules: Tuple[DetectionRule, ...]
    version: str = "1"
    description: str = ""
    source: str = ""
    decision_tree: Optional["DecisionTree"] = field(default=None, compare=False)

    def __len__(self) -> int:
        return len(self.rules)

    def __iter__(self):
        return iter(self.rules)

    @property
    def rule_ids(self) -> Tuple[str, ...]:
        return tuple(r.id for r in self.rules)

    def get(self, rule_id: str) -> Optional[DetectionRule]:
        for rule in self.rules:
            if rule.id == rule_id:
                return rule
        return None

    def narrow(self, rule_ids: Iterable[str]) -> "RuleCatalog":
        """Return a catalog holding only ``rule_ids``, in declaration order."""
        keep = set(rule_ids)
        return replace(self, rules=tuple(r for r in self.rules if r.id in keep))
