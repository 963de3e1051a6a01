from pathlib import Path
from typing import Any, Iterable, List, Union

import yaml

from config_audit.config.defaults import bundled_domains, get_catalog_path
from config_audit.decision.tree import build_decision_tree
from config_audit.errors import CatalogError, RuleDefinitionError
from config_audit.rules.predicates import build_predicate
from config_audit.rules.rule_model import DetectionRule, RuleCatalog
from config_audit.rules.rule_utils import read_catalog_document, schema_errors, validate_template
from config_audit.utils.glob_utils import validate_glob
from config_audit.utils.logger import get_logger

logger = get_logger()


def load_catalog_from_yaml(yaml_path: Path) -> RuleCatalog:
    try:
        document = read_catalog_document(yaml_path)
    except OSError as ex:
        raise CatalogError(f"cannot read catalog: {ex.strerror or ex}", source=str(yaml_path))
    except yaml.YAMLError as ex:
        raise CatalogError(f"malformed YAML: {ex}", source=str(yaml_path))

    return load_catalog(document, source=str(yaml_path))


def load_catalog(document: Any, source: str = "<memory>") -> RuleCatalog:
    """
    Build an immutable RuleCatalog from a parsed catalog document.

    The whole catalog is rejected on the first problem: schema violations,
    duplicate ids, malformed predicates or templates, and conflicts_with /
    supersedes references to ids the catalog does not define.
    """
    errors = schema_errors(document)
    if errors:
        for err in errors:
            logger.error(f"[CatalogLoader] {source}: {err}")
        raise CatalogError(f"schema validation failed: {'; '.join(errors)}", source=source)

    domain = document["domain"]
    rules: List[DetectionRule] = []
    seen = set()

    for order, entry in enumerate(document["rules"]):
        rule_id = entry["id"]
        if rule_id in seen:
            raise RuleDefinitionError(rule_id, "duplicate rule id", source=source)
        seen.add(rule_id)
        rules.append(_build_rule(entry, domain, order, source))

    for rule in rules:
        for kind, refs in (("conflicts_with", rule.conflicts_with), ("supersedes", rule.supersedes)):
            dangling = sorted(refs - seen)
            if dangling:
                raise RuleDefinitionError(rule.id, f"{kind} references undefined rule ids {dangling}", source=source)
            if rule.id in refs:
                raise RuleDefinitionError(rule.id, f"{kind} references itself", source=source)

    rule_ids = tuple(r.id for r in rules)
    tree = None
    if "decision_tree" in document:
        tree = build_decision_tree(document["decision_tree"], domain, rule_ids, source=source)

    catalog = RuleCatalog(
        domain=domain,
        rules=tuple(rules),
        version=str(document.get("version", "1")),
        description=document.get("description", ""),
        source=source,
        decision_tree=tree,
    )
    logger.info(f"[✓] Loaded catalog '{domain}' with {len(rules)} rules from {source}")
    return catalog


def _build_rule(entry: dict, domain: str, order: int, source: str) -> DetectionRule:
    rule_id = entry["id"]
    try:
        predicate = build_predicate(entry["predicate"])
        for pattern in entry["target_patterns"]:
            validate_glob(pattern)
        validate_template(entry["message"])
        validate_template(entry.get("remediation", ""))
    except ValueError as ex:
        raise RuleDefinitionError(rule_id, str(ex), source=source)

    return DetectionRule(
        id=rule_id,
        domain=domain,
        target_patterns=tuple(entry["target_patterns"]),
        predicate=predicate,
        severity=entry["severity"],
        message=entry["message"].strip(),
        remediation=entry.get("remediation", "").strip(),
        conflicts_with=frozenset(entry.get("conflicts_with", ())),
        supersedes=frozenset(entry.get("supersedes", ())),
        title=entry.get("title", ""),
        tags=tuple(entry.get("tags", ())),
        order=order,
    )


def resolve_catalog_path(name_or_path: Union[str, Path]) -> Path:
    """A bundled domain name (``docker``) or a path to a catalog file."""
    candidate = Path(name_or_path)
    if candidate.suffix in (".yaml", ".yml") or candidate.exists():
        return candidate
    bundled = get_catalog_path(str(name_or_path))
    if not bundled.exists():
        raise CatalogError(f"unknown domain pack '{name_or_path}' (bundled: {', '.join(bundled_domains())})")
    return bundled


def load_domain_packs(names: Iterable[Union[str, Path]]) -> List[RuleCatalog]:
    catalogs: List[RuleCatalog] = []
    domains = set()
    for name in names:
        catalog = load_catalog_from_yaml(resolve_catalog_path(name))
        if catalog.domain in domains:
            raise CatalogError(f"domain '{catalog.domain}' loaded twice", source=catalog.source)
        domains.add(catalog.domain)
        catalogs.append(catalog)
    return catalogs
