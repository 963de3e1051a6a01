"""
Decision trees that pick which part of a domain catalog is active.

A tree is declared next to the rules in the catalog document. Internal nodes
ask one yes/no question, either about the caller's declared intent or about
the project (a predicate evaluated against a probe ProjectSignal). Leaves
name an action that narrows the catalog, or skips the domain entirely.

The walk is a single forward pass. A question whose answer is unknown
(intent key not supplied, predicate indeterminate, no probe signal) follows
the node's declared ``fallback`` branch, so traversal always reaches a leaf.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from config_audit.collect.signals import ProjectSignal
from config_audit.errors import RuleDefinitionError
from config_audit.rules.predicates import Predicate, Truth, build_predicate
from config_audit.rules.rule_engine import RuleEvaluator
from config_audit.rules.rule_model import RuleCatalog
from config_audit.utils.logger import get_logger

logger = get_logger()

_UNSET = object()


@dataclass(frozen=True)
class AuditIntent:
    """What the caller declared about the request. Supplied by the host, never inferred here."""
    project_state: Optional[str] = None                 # "new" | "existing"
    requested_domains: Tuple[str, ...] = ()
    answers: Mapping[str, Any] = field(default_factory=dict)

    def lookup(self, key: str) -> Any:
        if key == "project_state":
            return self.project_state if self.project_state is not None else _UNSET
        if key == "new_project":
            return _UNSET if self.project_state is None else self.project_state == "new"
        return self.answers.get(key, _UNSET)


@dataclass(frozen=True)
class Action:
    name: str
    description: str = ""
    enable_only: Optional[Tuple[str, ...]] = None
    disable: Tuple[str, ...] = ()
    skip_domain: bool = False

    def apply(self, catalog: RuleCatalog) -> Optional[RuleCatalog]:
        if self.skip_domain:
            return None
        keep = set(self.enable_only) if self.enable_only is not None else set(catalog.rule_ids)
        keep -= set(self.disable)
        return catalog.narrow(keep)


@dataclass(frozen=True)
class QuestionNode:
    id: str
    yes: str
    no: str
    fallback: str                           # "yes" | "no"
    text: str = ""
    intent_key: Optional[str] = None
    intent_equals: Any = None
    compares: bool = False                  # intent answer is compared with intent_equals
    signal: Optional[Predicate] = None


@dataclass(frozen=True)
class LeafNode:
    id: str
    action: Action


@dataclass(frozen=True)
class DecisionTree:
    domain: str
    root: str
    nodes: Mapping[str, Any]

    def scope(self, node_id: str) -> str:
        return f"{self.domain}/decision/{node_id}"

    def signal_questions(self) -> Dict[str, Predicate]:
        """Predicates asked by the tree, keyed by regex-table scope."""
        return {
            self.scope(node.id): node.signal
            for node in self.nodes.values()
            if isinstance(node, QuestionNode) and node.signal is not None
        }


@dataclass(frozen=True)
class DecisionOutcome:
    domain: str
    action: str
    path: Tuple[str, ...]
    catalog: Optional[RuleCatalog]
    fallbacks: Tuple[str, ...] = ()

    @property
    def skipped(self) -> bool:
        return self.catalog is None


def build_decision_tree(raw: Mapping[str, Any], domain: str, rule_ids: Tuple[str, ...], source: str = "") -> DecisionTree:
    """Build and validate a tree. Any structural problem raises RuleDefinitionError."""
    known_rules = set(rule_ids)
    nodes: Dict[str, Any] = {}

    for entry in raw["nodes"]:
        node_id = entry["id"]
        where = f"decision/{node_id}"
        if node_id in nodes:
            raise RuleDefinitionError(where, "duplicate node id", source=source)

        if "action" in entry:
            spec = entry["action"]
            referenced = list(spec.get("enable_only") or []) + list(spec.get("disable") or [])
            unknown = sorted(set(referenced) - known_rules)
            if unknown:
                raise RuleDefinitionError(where, f"action references unknown rule ids {unknown}", source=source)
            enable_only = spec.get("enable_only")
            nodes[node_id] = LeafNode(id=node_id, action=Action(
                name=spec["name"],
                description=spec.get("description", ""),
                enable_only=tuple(enable_only) if enable_only is not None else None,
                disable=tuple(spec.get("disable") or ()),
                skip_domain=bool(spec.get("skip_domain", False)),
            ))
            continue

        question = entry["question"]
        has_intent, has_signal = "intent" in question, "signal" in question
        if has_intent == has_signal:
            raise RuleDefinitionError(where, "question must ask exactly one of 'intent' or 'signal'", source=source)

        signal = None
        if has_signal:
            try:
                signal = build_predicate(question["signal"], f"{where}.signal")
            except ValueError as ex:
                raise RuleDefinitionError(where, str(ex), source=source)

        intent = question.get("intent", {})
        nodes[node_id] = QuestionNode(
            id=node_id,
            yes=entry["yes"],
            no=entry["no"],
            fallback=entry["fallback"],
            text=question.get("text", ""),
            intent_key=intent.get("key"),
            intent_equals=intent.get("equals"),
            compares="equals" in intent,
            signal=signal,
        )

    tree = DecisionTree(domain=domain, root=raw["root"], nodes=nodes)
    _check_shape(tree, source)
    return tree


def _check_shape(tree: DecisionTree, source: str) -> None:
    if tree.root not in tree.nodes:
        raise RuleDefinitionError("decision", f"root '{tree.root}' is not a declared node", source=source)

    for node in tree.nodes.values():
        if isinstance(node, QuestionNode):
            for branch in (node.yes, node.no):
                if branch not in tree.nodes:
                    raise RuleDefinitionError(f"decision/{node.id}", f"branch target '{branch}' is not a declared node", source=source)

    # Depth-first from the root: a node seen again on the current path is a cycle.
    visited: set = set()
    stack: List[Tuple[str, Tuple[str, ...]]] = [(tree.root, ())]
    while stack:
        node_id, trail = stack.pop()
        if node_id in trail:
            raise RuleDefinitionError(f"decision/{node_id}", f"cycle via {' -> '.join(trail + (node_id,))}", source=source)
        visited.add(node_id)
        node = tree.nodes[node_id]
        if isinstance(node, QuestionNode):
            stack.append((node.no, trail + (node_id,)))
            stack.append((node.yes, trail + (node_id,)))

    unreachable = sorted(set(tree.nodes) - visited)
    if unreachable:
        raise RuleDefinitionError("decision", f"unreachable nodes {unreachable}", source=source)


class DecisionTreeWalker:
    """Walks a catalog's decision tree and narrows the catalog accordingly."""

    def __init__(self, evaluator: Optional[RuleEvaluator] = None):
        self.evaluator = evaluator or RuleEvaluator()

    def walk(self, catalog: RuleCatalog, intent: AuditIntent, signal: Optional[ProjectSignal] = None) -> DecisionOutcome:
        tree = catalog.decision_tree
        if tree is None:
            return DecisionOutcome(domain=catalog.domain, action="default", path=(), catalog=catalog)

        path: List[str] = []
        fallbacks: List[str] = []
        node = tree.nodes[tree.root]

        # Trees are validated acyclic, so the walk ends within len(nodes) steps.
        for _ in range(len(tree.nodes)):
            path.append(node.id)
            if isinstance(node, LeafNode):
                narrowed = node.action.apply(catalog)
                logger.info(
                    f"[DecisionTree] {catalog.domain}: {' -> '.join(path)} => {node.action.name}"
                    + (" (domain skipped)" if narrowed is None else f" ({len(narrowed)} rule(s) active)")
                )
                return DecisionOutcome(
                    domain=catalog.domain,
                    action=node.action.name,
                    path=tuple(path),
                    catalog=narrowed,
                    fallbacks=tuple(fallbacks),
                )

            answer = self._answer(tree, node, intent, signal)
            if answer is None:
                fallbacks.append(node.id)
                answer = node.fallback == "yes"
                logger.debug(f"[DecisionTree] {catalog.domain}/{node.id}: no answer, fallback '{node.fallback}'")
            node = tree.nodes[node.yes if answer else node.no]

        raise RuntimeError(f"decision tree for {catalog.domain} did not reach a leaf")

    def _answer(self, tree: DecisionTree, node: QuestionNode, intent: AuditIntent, signal: Optional[ProjectSignal]) -> Optional[bool]:
        if node.intent_key is not None:
            value = intent.lookup(node.intent_key)
            if value is _UNSET or value is None:
                return None
            if not node.compares:
                return bool(value)
            return value == node.intent_equals

        if signal is None:
            return None
        outcome = self.evaluator.evaluate_predicate(node.signal, signal, scope=tree.scope(node.id))
        if outcome.truth is Truth.INDETERMINATE:
            return None
        return outcome.truth is Truth.TRUE
