from datetime import datetime, timezone

import pytest
import yaml

from config_audit.rules.rule_loader import load_catalog

FIXED_TIME = datetime(2026, 1, 15, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def make_project(tmp_path):
    """Write {relative path: text} into a fresh project root and return the root."""
    def _make(files, name="project"):
        root = tmp_path / name
        root.mkdir(parents=True, exist_ok=True)
        for rel, text in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(text, bytes):
                path.write_bytes(text)
            else:
                path.write_text(text, encoding="utf-8")
        return root
    return _make


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_TIME


def rule(rule_id, predicate, severity="important", targets=("**",), **extra):
    entry = {
        "id": rule_id,
        "severity": severity,
        "target_patterns": list(targets),
        "predicate": predicate,
        "message": extra.pop("message", f"{rule_id} fired: {{evidence}}"),
    }
    entry.update(extra)
    return entry


def catalog(domain, rules, tree=None):
    document = {"domain": domain, "rules": rules}
    if tree is not None:
        document["decision_tree"] = tree
    return load_catalog(document, source=f"<{domain}>")


@pytest.fixture
def build_rule():
    return rule


@pytest.fixture
def build_catalog():
    return catalog


@pytest.fixture
def write_catalog(tmp_path):
    def _write(document, name="catalog.yaml"):
        path = tmp_path / "catalogs" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(yaml.safe_dump(document, sort_keys=False), encoding="utf-8")
        return path
    return _write
