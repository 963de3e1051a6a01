import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Tuple

from config_audit.collect.parsers import MISSING, resolve_pointer
from config_audit.collect.signals import ProjectSignal
from config_audit.collect.versions import compare_versions, parse_version
from config_audit.errors import EvaluationError
from config_audit.reports.models import Finding
from config_audit.rules.predicates import (
    AllOf,
    AnyOf,
    ConfigKeyEquals,
    Not,
    Outcome,
    PathExists,
    Predicate,
    RegexPresent,
    Truth,
    VersionAtLeast,
    VersionLessThan,
    describe,
    first_pointer,
)
from config_audit.rules.rule_model import DetectionRule, RuleCatalog
from config_audit.rules.rule_utils import render_template
from config_audit.utils.logger import get_logger

logger = get_logger()

MAX_EVIDENCE = 25


def _dump(value: Any) -> str:
    return json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)


def json_equal(left: Any, right: Any) -> bool:
    """Equality with JSON semantics: ``true`` is not ``1``."""
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    if isinstance(left, dict) and isinstance(right, dict):
        return left.keys() == right.keys() and all(json_equal(left[k], right[k]) for k in left)
    if isinstance(left, list) and isinstance(right, list):
        return len(left) == len(right) and all(json_equal(a, b) for a, b in zip(left, right))
    return left == right


def _merge(outcomes: Iterable[Outcome]) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(s for o in outcomes for s in o.support))


@dataclass
class EvaluationResult:
    findings: List[Finding] = field(default_factory=list)
    indeterminate: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


class RuleEvaluator:
    """
    Applies rule predicates to a ProjectSignal.

    Pure and total: the same rules and signal always give the same outcomes,
    and a missing or unreadable signal yields INDETERMINATE rather than an
    exception. Only rules whose predicate is TRUE become findings.
    """

    def evaluate(self, catalogs: Iterable[RuleCatalog], signal: ProjectSignal) -> EvaluationResult:
        result = EvaluationResult()
        for catalog in catalogs:
            for rule in catalog.rules:
                try:
                    outcome = self.evaluate_rule(rule, signal)
                except EvaluationError as err:
                    logger.error(f"[RuleEvaluator] Defect, rule skipped: {err}")
                    result.skipped.append(rule.scope)
                    continue

                if outcome.truth is Truth.TRUE:
                    result.findings.append(self.build_finding(rule, outcome, signal))
                    logger.info(f"[RuleEvaluator] ✅ {catalog.domain}/{rule.id} fired ({rule.severity})")
                elif outcome.truth is Truth.INDETERMINATE:
                    result.indeterminate.append(rule.scope)
                    logger.debug(
                        f"[RuleEvaluator] {rule.id} indeterminate: {list(outcome.support)} "
                        f"predicate={_dump(describe(rule.predicate))}"
                    )
                else:
                    logger.debug(f"[RuleEvaluator] ❌ {rule.id} did not match")

        logger.info(
            f"[RuleEvaluator] {len(result.findings)} fired, {len(result.indeterminate)} indeterminate, "
            f"{len(result.skipped)} skipped"
        )
        return result

    def evaluate_rule(self, rule: DetectionRule, signal: ProjectSignal) -> Outcome:
        try:
            return self.evaluate_predicate(rule.predicate, signal, scope=rule.scope)
        except Exception as ex:
            raise EvaluationError(rule.id, ex) from ex

    def build_finding(self, rule: DetectionRule, outcome: Outcome, signal: ProjectSignal) -> Finding:
        evidence = tuple(sorted(outcome.support))[:MAX_EVIDENCE]
        files = sorted({f for pattern in rule.target_patterns for f in signal.files_matching(pattern)})
        values = {
            "rule_id": rule.id,
            "domain": rule.domain,
            "severity": rule.severity,
            "evidence": "; ".join(evidence),
            "files": ", ".join(files),
            "pointer": first_pointer(rule.predicate),
        }
        return Finding(
            rule_id=rule.id,
            domain=rule.domain,
            severity=rule.severity,
            message=render_template(rule.message, values),
            remediation=render_template(rule.remediation, values),
            evidence=evidence,
            title=rule.title,
            tags=rule.tags,
            order=rule.order,
        )

    # ─── Predicate tree ─────────────────────────────────

    def evaluate_predicate(self, predicate: Predicate, signal: ProjectSignal, scope: str) -> Outcome:
        if isinstance(predicate, AllOf):
            outcomes = [self.evaluate_predicate(c, signal, scope) for c in predicate.children]
            truth = Truth.TRUE
            for o in outcomes:
                truth = truth & o.truth
            return Outcome(truth, _merge(o for o in outcomes if o.truth is truth))

        if isinstance(predicate, AnyOf):
            outcomes = [self.evaluate_predicate(c, signal, scope) for c in predicate.children]
            truth = Truth.FALSE
            for o in outcomes:
                truth = truth | o.truth
            return Outcome(truth, _merge(o for o in outcomes if o.truth is truth))

        if isinstance(predicate, Not):
            inner = self.evaluate_predicate(predicate.child, signal, scope)
            return Outcome(~inner.truth, inner.support)

        handler = self._LEAF_HANDLERS.get(type(predicate))
        if handler is None:
            raise TypeError(f"unsupported predicate node {type(predicate).__name__}")
        return handler(self, predicate, signal, scope)

    # ─── Leaves ─────────────────────────────────────────

    def _path_exists(self, leaf: PathExists, signal: ProjectSignal, scope: str) -> Outcome:
        found = signal.files_matching(leaf.path)
        if found:
            return Outcome(Truth.TRUE, tuple(f"{f} exists" for f in found))
        if signal.unreadable_dirs:
            dirs = ", ".join(e.key for e in signal.unreadable_dirs)
            return Outcome(Truth.INDETERMINATE, (f"no file matches '{leaf.path}' but {dirs} could not be listed",))
        return Outcome(Truth.FALSE, (f"no file matches '{leaf.path}'",))

    def _config_key_equals(self, leaf: ConfigKeyEquals, signal: ProjectSignal, scope: str) -> Outcome:
        paths = signal.files_matching(leaf.path)
        if not paths:
            return Outcome(Truth.INDETERMINATE, (f"no file matches '{leaf.path}'",))

        hits, misses, unknown = [], [], []
        for path in paths:
            entry = signal.configs.get(path)
            if entry is None or not entry.available:
                reason = entry.reason if entry is not None else "not collected"
                unknown.append(f"{path} unavailable ({reason})")
                continue
            actual = resolve_pointer(entry.value, leaf.tokens)
            if actual is MISSING:
                misses.append(f"{path}#{leaf.pointer} is not set")
            elif json_equal(actual, leaf.value):
                hits.append(f"{path}#{leaf.pointer} is {_dump(actual)}")
            else:
                misses.append(f"{path}#{leaf.pointer} is {_dump(actual)}, not {_dump(leaf.value)}")

        if hits:
            return Outcome(Truth.TRUE, tuple(hits))
        if unknown:
            return Outcome(Truth.INDETERMINATE, tuple(unknown))
        return Outcome(Truth.FALSE, tuple(misses))

    def _regex_present(self, leaf: RegexPresent, signal: ProjectSignal, scope: str) -> Outcome:
        entries = signal.regex_entries(scope, leaf.key)
        if not entries:
            return Outcome(Truth.INDETERMINATE, (f"no file matches '{leaf.path}'",))

        hits, misses, unknown = [], [], []
        for path in sorted(entries):
            entry = entries[path]
            if not entry.available:
                unknown.append(f"{path} unavailable ({entry.reason})")
            elif entry.value:
                hits.extend(f"{m.file}:{m.line}: {m.text}" for m in entry.value)
            else:
                misses.append(f"{path} has no match for /{leaf.pattern}/")

        if hits:
            return Outcome(Truth.TRUE, tuple(hits))
        if unknown:
            return Outcome(Truth.INDETERMINATE, tuple(unknown))
        return Outcome(Truth.FALSE, tuple(misses))

    def _version_compare(self, leaf, signal: ProjectSignal, scope: str) -> Outcome:
        entry = signal.tools.get(leaf.tool)
        if entry is None:
            return Outcome(Truth.INDETERMINATE, (f"{leaf.tool} version not declared",))
        if not entry.available:
            return Outcome(Truth.INDETERMINATE, (f"{leaf.tool} version unavailable ({entry.reason})",))

        actual = parse_version(entry.value)
        if actual is None:
            return Outcome(Truth.INDETERMINATE, (f"{leaf.tool} version '{entry.value}' is not comparable",))

        cmp = compare_versions(actual, leaf.threshold)
        holds = cmp < 0 if isinstance(leaf, VersionLessThan) else cmp >= 0
        relation = "<" if cmp < 0 else ">="
        return Outcome(Truth.TRUE if holds else Truth.FALSE, (f"{leaf.tool} {entry.value} {relation} {leaf.version}",))

    _LEAF_HANDLERS: Dict[type, Any] = {
        PathExists: _path_exists,
        ConfigKeyEquals: _config_key_equals,
        RegexPresent: _regex_present,
        VersionLessThan: _version_compare,
        VersionAtLeast: _version_compare,
    }
