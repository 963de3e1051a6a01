import time
from dataclasses import dataclass
from functools import partial
from multiprocessing import get_context
from pathlib import Path
from typing import List, Optional, Sequence

from config_audit.config.profile_loader import AuditProfile
from config_audit.core.audit_runner import run_audit
from config_audit.decision.tree import AuditIntent
from config_audit.errors import AuditError
from config_audit.reports.models import AuditReport
from config_audit.rules.rule_model import RuleCatalog
from config_audit.utils.logger import get_logger


@dataclass(frozen=True)
class BatchResult:
    root: str
    report: Optional[AuditReport] = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.report is not None


def safe_audit(
        root: Path,
        domain_packs: Sequence[RuleCatalog],
        intent: Optional[AuditIntent],
        profile: Optional[AuditProfile]
    ) -> BatchResult:
        try:
            report = run_audit(root, domain_packs, intent, profile=profile)
            return BatchResult(root=str(root), report=report)
        except (AuditError, OSError) as e:
            return BatchResult(root=str(root), error=f"{type(e).__name__}: {e}")


class AuditBatchRunner:
    """
    Runs independent audits (e.g. the packages of a monorepo), serially or in
    worker processes. Pipelines share nothing but the immutable catalogs.
    """

    def __init__(
        self,
        roots: Sequence[Path],
        domain_packs: Sequence[RuleCatalog],
        intent: Optional[AuditIntent] = None,
        profile: Optional[AuditProfile] = None,
        parallel: bool = False,
        max_workers: int = 4
    ):
        self.roots = list(roots)
        self.domain_packs = list(domain_packs)
        self.intent = intent
        self.profile = profile
        self.parallel = parallel
        self.max_workers = max_workers
        self.logger = get_logger()

    def run(self) -> List[BatchResult]:
        """
        Runs every audit and returns one result per root, in input order.
        A failed audit is reported in its result and never stops the batch.
        """
        mode = "parallel" if self.parallel and len(self.roots) > 1 else "serial"
        self.logger.info(f"[*] Auditing {len(self.roots)} root(s) in {mode} mode...")

        start_time = time.perf_counter()
        results = self._run_parallel() if mode == "parallel" else self._run_serial()
        elapsed_time = time.perf_counter() - start_time

        failed = [r for r in results if not r.ok]
        for result in failed:
            self.logger.error(f"[✗] Audit failed for {result.root}: {result.error}")
        self.logger.info(f"[✓] Batch complete: {len(results) - len(failed)}/{len(results)} audits in {elapsed_time:.2f} seconds.")
        return results

    def _run_serial(self) -> List[BatchResult]:
        return [safe_audit(root, self.domain_packs, self.intent, self.profile) for root in self.roots]

    def _run_parallel(self) -> List[BatchResult]:
        safe_func = partial(
            safe_audit,
            domain_packs=self.domain_packs,
            intent=self.intent,
            profile=self.profile
        )

        with get_context("spawn").Pool(processes=min(self.max_workers, len(self.roots))) as pool:
            results = pool.map(safe_func, self.roots)

        return results
