import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from config_audit.collect.collector import ProjectStateCollector
from config_audit.collect.signals import ProjectSignal
from config_audit.config.profile_loader import AuditProfile
from config_audit.decision.tree import AuditIntent, DecisionOutcome, DecisionTreeWalker
from config_audit.errors import AuditCancelled
from config_audit.reports.aggregator import FindingAggregator
from config_audit.reports.models import AuditReport, DecisionRecord, UnavailableSignal
from config_audit.rules.rule_engine import RuleEvaluator
from config_audit.rules.rule_model import RuleCatalog
from config_audit.utils.logger import get_logger, log_audit_debug

logger = get_logger()

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CancellationToken:
    """Checked between pipeline stages. A stage already running always completes."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def check(self, stage: str) -> None:
        if self.cancelled:
            logger.warning(f"[Audit] Cancelled before {stage}")
            raise AuditCancelled(stage)


class AuditPipeline:
    """
    One audit of one project root: decide → collect → evaluate → aggregate.

    Holds no state between runs. Catalogs are immutable and may be shared by
    pipelines running concurrently.
    """

    def __init__(
        self,
        profile: Optional[AuditProfile] = None,
        clock: Clock = utc_now,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self.collector = ProjectStateCollector(profile)
        self.evaluator = RuleEvaluator()
        self.walker = DecisionTreeWalker(self.evaluator)
        self.clock = clock
        self.cancel_token = cancel_token or CancellationToken()

    def run(self, root: Union[str, Path], domain_packs: Sequence[RuleCatalog], intent: Optional[AuditIntent] = None) -> AuditReport:
        intent = intent or AuditIntent()
        packs = self._select_packs(domain_packs, intent)
        logger.info(f"[Audit] Starting audit of {root} for {[c.domain for c in packs]}")

        self.cancel_token.check("decide")
        outcomes = self._decide(root, packs, intent)
        active = [o.catalog for o in outcomes if o.catalog is not None]

        self.cancel_token.check("collect")
        signal = self.collector.collect(root, [rule for catalog in active for rule in catalog.rules])

        self.cancel_token.check("evaluate")
        evaluation = self.evaluator.evaluate(active, signal)

        self.cancel_token.check("aggregate")
        findings = FindingAggregator(active).aggregate(evaluation.findings)

        report = AuditReport(
            root=signal.root,
            generated_at=self.clock(),
            domains=tuple(c.domain for c in active),
            decisions=tuple(
                DecisionRecord(domain=o.domain, action=o.action, path=o.path, fallbacks=o.fallbacks, skipped=o.skipped)
                for o in outcomes
            ),
            findings=tuple(findings),
            unavailable_signals=tuple(UnavailableSignal(key=e.key, reason=e.reason) for e in signal.unavailable()),
            indeterminate_rules=tuple(evaluation.indeterminate),
            skipped_rules=tuple(evaluation.skipped),
        )
        log_audit_debug(
            logger,
            report.root,
            report.domains,
            {k: v for k, v in report.summary.items() if v},
            unavailable=[s.key for s in report.unavailable_signals],
            indeterminate=report.indeterminate_rules,
        )
        return report

    @staticmethod
    def _select_packs(domain_packs: Sequence[RuleCatalog], intent: AuditIntent) -> List[RuleCatalog]:
        if not intent.requested_domains:
            return list(domain_packs)
        requested = set(intent.requested_domains)
        missing = requested - {c.domain for c in domain_packs}
        if missing:
            logger.warning(f"[Audit] Requested domains without a loaded pack: {sorted(missing)}")
        return [c for c in domain_packs if c.domain in requested]

    def _decide(self, root: Union[str, Path], packs: Sequence[RuleCatalog], intent: AuditIntent) -> List[DecisionOutcome]:
        questions = {}
        for catalog in packs:
            if catalog.decision_tree is not None:
                questions.update(catalog.decision_tree.signal_questions())

        probe: Optional[ProjectSignal] = self.collector.probe(root, questions) if questions else None
        return [self.walker.walk(catalog, intent, probe) for catalog in packs]


def run_audit(
    root: Union[str, Path],
    domain_packs: Sequence[RuleCatalog],
    intent: Optional[AuditIntent] = None,
    profile: Optional[AuditProfile] = None,
    clock: Clock = utc_now,
    cancel_token: Optional[CancellationToken] = None,
) -> AuditReport:
    """
    Audit ``root`` against ``domain_packs`` and return the terminal AuditReport.

    Raises CollectionError when the root cannot be read and AuditCancelled when
    ``cancel_token`` is set between stages. Everything else that goes wrong
    while reading the project is reported inside the AuditReport.
    """
    return AuditPipeline(profile=profile, clock=clock, cancel_token=cancel_token).run(root, domain_packs, intent)
