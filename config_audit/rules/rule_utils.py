import string
from pathlib import Path
from typing import Any, Dict, Iterable, List

import jsonschema
import yaml

from config_audit.config.defaults import SEVERITIES

# Placeholders a rule's message and remediation may reference.
TEMPLATE_FIELDS = {"rule_id", "domain", "severity", "evidence", "files", "pointer"}

ID_PATTERN = r"^[a-z0-9][a-z0-9._-]*$"

PREDICATE_NODE = {"type": "object", "minProperties": 1, "maxProperties": 1}

RULE_SCHEMA = {
    "type": "object",
    "required": ["id", "severity", "target_patterns", "predicate", "message"],
    "properties": {
        "id": {"type": "string", "pattern": ID_PATTERN},
        "title": {"type": "string"},
        "severity": {"type": "string", "enum": list(SEVERITIES)},
        "target_patterns": {
            "type": "array",
            "minItems": 1,
            "items": {"type": "string", "minLength": 1}
        },
        "predicate": PREDICATE_NODE,
        "message": {"type": "string", "minLength": 1},
        "remediation": {"type": "string"},
        "conflicts_with": {"type": "array", "items": {"type": "string"}, "uniqueItems": True},
        "supersedes": {"type": "array", "items": {"type": "string"}, "uniqueItems": True},
        "tags": {"type": "array", "items": {"type": "string"}}
    },
    "additionalProperties": False
}

DECISION_NODE_SCHEMA = {
    "type": "object",
    "required": ["id"],
    "properties": {
        "id": {"type": "string", "pattern": ID_PATTERN},
        "question": {
            "type": "object",
            "properties": {
                "intent": {
                    "type": "object",
                    "required": ["key"],
                    "properties": {
                        "key": {"type": "string", "minLength": 1},
                        "equals": {}
                    },
                    "additionalProperties": False
                },
                "signal": PREDICATE_NODE,
                "text": {"type": "string"}
            },
            "additionalProperties": False
        },
        "yes": {"type": "string"},
        "no": {"type": "string"},
        "fallback": {"type": "string", "enum": ["yes", "no"]},
        "action": {
            "type": "object",
            "required": ["name"],
            "properties": {
                "name": {"type": "string", "minLength": 1},
                "description": {"type": "string"},
                "enable_only": {"type": "array", "items": {"type": "string"}},
                "disable": {"type": "array", "items": {"type": "string"}},
                "skip_domain": {"type": "boolean"}
            },
            "additionalProperties": False
        }
    },
    "oneOf": [
        {"required": ["question", "yes", "no", "fallback"], "not": {"required": ["action"]}},
        {"required": ["action"], "not": {"anyOf": [{"required": ["question"]}, {"required": ["yes"]}, {"required": ["no"]}]}}
    ],
    "additionalProperties": False
}

# JSON schema for validating a domain catalog document
CATALOG_SCHEMA = {
    "type": "object",
    "required": ["domain", "rules"],
    "properties": {
        "domain": {"type": "string", "pattern": ID_PATTERN},
        "version": {"type": ["string", "integer", "number"]},
        "description": {"type": "string"},
        "rules": {"type": "array", "items": RULE_SCHEMA},
        "decision_tree": {
            "type": "object",
            "required": ["root", "nodes"],
            "properties": {
                "root": {"type": "string"},
                "nodes": {"type": "array", "minItems": 1, "items": DECISION_NODE_SCHEMA}
            },
            "additionalProperties": False
        }
    },
    "additionalProperties": False
}


def read_catalog_document(yaml_path: Path) -> Any:
    """
    Read a catalog YAML document. Raises OSError or yaml.YAMLError.
    """
    with yaml_path.open(encoding="utf-8") as f:
        return yaml.safe_load(f)


def schema_errors(document: Any) -> List[str]:
    """
    Validate a catalog document against CATALOG_SCHEMA.
    Returns every violation, formatted with its location, in document order.
    """
    validator = jsonschema.Draft7Validator(CATALOG_SCHEMA)
    errors = sorted(validator.iter_errors(document), key=lambda e: [str(p) for p in e.absolute_path])
    messages = []
    for err in errors:
        location = "/".join(str(p) for p in err.absolute_path) or "<root>"
        messages.append(f"{location}: {err.message}")
    return messages


def template_fields(template: str) -> List[str]:
    """Return placeholder names used by a str.format template. Raises ValueError on bad syntax."""
    names = []
    for _, field_name, _, _ in string.Formatter().parse(template):
        if field_name is not None:
            names.append(field_name)
    return names


def validate_template(template: str, allowed: Iterable[str] = TEMPLATE_FIELDS) -> None:
    allowed = set(allowed)
    for name in template_fields(template):
        if name not in allowed:
            raise ValueError(f"unknown placeholder '{{{name}}}' (allowed: {sorted(allowed)})")


class _TemplateValues(dict):
    def __missing__(self, key):
        return ""


def render_template(template: str, values: Dict[str, str]) -> str:
    return template.format_map(_TemplateValues(values))
