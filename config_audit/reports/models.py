from dataclasses import dataclass, field, asdict, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from config_audit.config.defaults import SEVERITIES, SEVERITY_RANK


class FindingStatus(str, Enum):
    ACTIVE = "active"
    SUPERSEDED = "superseded"
    SUPPRESSED = "suppressed"


@dataclass(frozen=True)
class Finding:
    rule_id: str
    domain: str
    severity: str
    message: str
    remediation: str = ""
    evidence: Tuple[str, ...] = ()
    status: FindingStatus = FindingStatus.ACTIVE
    title: str = ""
    tags: Tuple[str, ...] = ()
    order: int = 0                          # declaration index of the rule in its catalog
    resolved_by: Optional[str] = None       # rule id that suppressed/superseded this finding

    @property
    def severity_rank(self) -> int:
        return SEVERITY_RANK[self.severity]

    @property
    def is_active(self) -> bool:
        return self.status is FindingStatus.ACTIVE

    def with_status(self, status: FindingStatus, resolved_by: str) -> "Finding":
        """Status transitions are one-way: only an active finding may change."""
        if not self.is_active:
            raise ValueError(f"finding {self.rule_id} is already {self.status.value}")
        if status is FindingStatus.ACTIVE:
            raise ValueError("cannot transition back to active")
        return replace(self, status=status, resolved_by=resolved_by)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["evidence"] = list(self.evidence)
        data["tags"] = list(self.tags)
        return data


@dataclass(frozen=True)
class DecisionRecord:
    domain: str
    action: str
    path: Tuple[str, ...] = ()
    fallbacks: Tuple[str, ...] = ()         # node ids answered by their fallback branch
    skipped: bool = False


@dataclass(frozen=True)
class UnavailableSignal:
    key: str
    reason: str


@dataclass(frozen=True)
class AuditReport:
    # ─── Run Metadata ──────────────────────────────────
    root: str
    generated_at: datetime
    domains: Tuple[str, ...] = ()
    decisions: Tuple[DecisionRecord, ...] = ()

    # ─── Results ───────────────────────────────────────
    findings: Tuple[Finding, ...] = ()               # final order, every status (audit trail)

    # ─── Coverage Notes ────────────────────────────────
    unavailable_signals: Tuple[UnavailableSignal, ...] = ()
    indeterminate_rules: Tuple[str, ...] = ()
    skipped_rules: Tuple[str, ...] = ()              # rules dropped after an evaluation defect

    @property
    def active_findings(self) -> Tuple[Finding, ...]:
        return tuple(f for f in self.findings if f.is_active)

    def section(self, severity: str) -> Tuple[Finding, ...]:
        return tuple(f for f in self.active_findings if f.severity == severity)

    @property
    def sections(self) -> List[Tuple[str, Tuple[Finding, ...]]]:
        return [(severity, self.section(severity)) for severity in SEVERITIES]

    @property
    def summary(self) -> Dict[str, int]:
        counts = {severity: len(self.section(severity)) for severity in SEVERITIES}
        counts["suppressed"] = sum(1 for f in self.findings if f.status is FindingStatus.SUPPRESSED)
        counts["superseded"] = sum(1 for f in self.findings if f.status is FindingStatus.SUPERSEDED)
        counts["unavailable_signals"] = len(self.unavailable_signals)
        return counts

    @property
    def has_critical(self) -> bool:
        return any(f.severity == "critical" for f in self.active_findings)
