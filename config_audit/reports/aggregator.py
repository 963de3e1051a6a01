from typing import Dict, List, Sequence, Tuple

from config_audit.reports.models import Finding, FindingStatus
from config_audit.rules.rule_model import DetectionRule, RuleCatalog
from config_audit.utils.logger import get_logger

logger = get_logger()

NodeKey = Tuple[str, str]      # (domain, rule id)


class FindingAggregator:
    """
    Resolves conflicts and duplicates among fired rules and orders the result.

    Conflicting findings are never deleted: losers are kept with status
    ``suppressed`` (or ``superseded``) so the report retains an audit trail.
    """

    def __init__(self, catalogs: Sequence[RuleCatalog]):
        self.rules: Dict[NodeKey, DetectionRule] = {}
        self.domain_index: Dict[str, int] = {}
        for index, catalog in enumerate(catalogs):
            self.domain_index.setdefault(catalog.domain, index)
            for rule in catalog.rules:
                self.rules[(catalog.domain, rule.id)] = rule

    def aggregate(self, findings: Sequence[Finding]) -> List[Finding]:
        unique = self._deduplicate(findings)
        resolved = self._resolve_conflicts(unique)
        resolved = self._apply_supersedes(resolved)
        ordered = sorted(resolved.values(), key=self._report_key)

        active = sum(1 for f in ordered if f.is_active)
        logger.info(f"[Aggregator] {len(findings)} fired → {active} active, {len(ordered) - active} resolved")
        return ordered

    # ─── Ordering ───────────────────────────────────────

    def _declaration_key(self, finding: Finding) -> Tuple[int, int]:
        return self.domain_index.get(finding.domain, len(self.domain_index)), finding.order

    def _report_key(self, finding: Finding):
        return -finding.severity_rank, finding.domain, finding.order, finding.rule_id

    # ─── Steps ──────────────────────────────────────────

    def _deduplicate(self, findings: Sequence[Finding]) -> Dict[NodeKey, Finding]:
        """Identical (domain, rule id, evidence) triples collapse into the first declared one."""
        seen = set()
        unique: Dict[NodeKey, Finding] = {}
        for finding in sorted(findings, key=self._declaration_key):
            key = (finding.domain, finding.rule_id, finding.evidence)
            if key in seen:
                logger.debug(f"[Aggregator] Duplicate {finding.domain}/{finding.rule_id} dropped")
                continue
            seen.add(key)
            unique.setdefault((finding.domain, finding.rule_id), finding)
        return unique

    def _neighbours(self, node: NodeKey, fired: Dict[NodeKey, Finding]) -> List[NodeKey]:
        domain, rule_id = node
        rule = self.rules.get(node)
        out = set()
        if rule is not None:
            out.update((domain, other) for other in rule.conflicts_with)
        # conflicts_with is symmetric even when declared on one side only
        for other_key in fired:
            other = self.rules.get(other_key)
            if other is not None and other_key[0] == domain and rule_id in other.conflicts_with:
                out.add(other_key)
        return sorted(k for k in out if k in fired and k != node)

    def _components(self, fired: Dict[NodeKey, Finding]) -> List[List[NodeKey]]:
        seen = set()
        components = []
        for start in sorted(fired, key=lambda k: self._declaration_key(fired[k])):
            if start in seen:
                continue
            component, stack = [], [start]
            seen.add(start)
            while stack:
                node = stack.pop()
                component.append(node)
                for nxt in self._neighbours(node, fired):
                    if nxt not in seen:
                        seen.add(nxt)
                        stack.append(nxt)
            components.append(component)
        return components

    def _pick_winner(self, component: List[NodeKey], fired: Dict[NodeKey, Finding]) -> NodeKey:
        top_rank = max(fired[k].severity_rank for k in component)
        candidates = [k for k in component if fired[k].severity_rank == top_rank]

        if len(candidates) > 1:
            superseded = set()
            for domain, rule_id in candidates:
                rule = self.rules.get((domain, rule_id))
                if rule is not None:
                    superseded.update((domain, target) for target in rule.supersedes)
            preferred = [k for k in candidates if k not in superseded]
            if preferred:
                candidates = preferred

        return min(candidates, key=lambda k: self._declaration_key(fired[k]))

    def _resolve_conflicts(self, fired: Dict[NodeKey, Finding]) -> Dict[NodeKey, Finding]:
        resolved = dict(fired)
        for component in self._components(fired):
            if len(component) < 2:
                continue
            winner = self._pick_winner(component, fired)
            for node in component:
                if node != winner:
                    resolved[node] = resolved[node].with_status(FindingStatus.SUPPRESSED, resolved_by=winner[1])
                    logger.info(f"[Aggregator] {node[0]}/{node[1]} suppressed by conflicting {winner[1]}")
        return resolved

    def _apply_supersedes(self, findings: Dict[NodeKey, Finding]) -> Dict[NodeKey, Finding]:
        active = [k for k, f in findings.items() if f.is_active]
        result = dict(findings)
        for node in sorted(active, key=lambda k: self._declaration_key(findings[k])):
            rule = self.rules.get(node)
            if rule is None or not result[node].is_active:
                continue
            for target in sorted(rule.supersedes):
                key = (node[0], target)
                if key in active and result[key].is_active:
                    result[key] = result[key].with_status(FindingStatus.SUPERSEDED, resolved_by=node[1])
                    logger.info(f"[Aggregator] {key[0]}/{target} superseded by {node[1]}")
        return result
