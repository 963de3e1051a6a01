"""
Predicate tree for detection rules.

A predicate is a closed set of node kinds: three combinators (``all``,
``any``, ``not``) over five leaf kinds. Nodes are frozen dataclasses built
once at catalog load; they hold no reference to project state.

Truth values are ternary. ``Truth.INDETERMINATE`` means "cannot be decided
from the collected signals" and follows Kleene logic, so a rule that depends
on an unreadable file can never turn into a false-positive ``TRUE``.
"""
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from config_audit.collect.parsers import parse_pointer
from config_audit.collect.versions import VersionTuple, parse_version
from config_audit.utils.glob_utils import validate_glob


class Truth(Enum):
    TRUE = "true"
    FALSE = "false"
    INDETERMINATE = "indeterminate"

    def __and__(self, other: "Truth") -> "Truth":
        if Truth.FALSE in (self, other):
            return Truth.FALSE
        if self is Truth.TRUE and other is Truth.TRUE:
            return Truth.TRUE
        return Truth.INDETERMINATE

    def __or__(self, other: "Truth") -> "Truth":
        if Truth.TRUE in (self, other):
            return Truth.TRUE
        if self is Truth.FALSE and other is Truth.FALSE:
            return Truth.FALSE
        return Truth.INDETERMINATE

    def __invert__(self) -> "Truth":
        if self is Truth.TRUE:
            return Truth.FALSE
        if self is Truth.FALSE:
            return Truth.TRUE
        return Truth.INDETERMINATE


@dataclass(frozen=True)
class Outcome:
    """A truth value plus the human-readable facts that support it."""
    truth: Truth
    support: Tuple[str, ...] = ()


# ─── Leaves ─────────────────────────────────────────────────

@dataclass(frozen=True)
class PathExists:
    path: str
    kind = "path_exists"


@dataclass(frozen=True)
class ConfigKeyEquals:
    path: str
    pointer: str
    value: Any
    tokens: Tuple[str, ...] = field(default=(), compare=False, repr=False)
    kind = "config_key_equals"


@dataclass(frozen=True)
class RegexPresent:
    path: str
    pattern: str
    skip_declared: str = ""
    regex: Optional["re.Pattern[str]"] = field(default=None, compare=False, repr=False)
    declared: Optional["re.Pattern[str]"] = field(default=None, compare=False, repr=False)
    kind = "regex_present"

    @property
    def key(self) -> str:
        if self.skip_declared:
            return f"{self.path}::{self.pattern}::{self.skip_declared}"
        return f"{self.path}::{self.pattern}"


@dataclass(frozen=True)
class VersionLessThan:
    tool: str
    version: str
    threshold: VersionTuple = field(default=(), compare=False, repr=False)
    kind = "version_less_than"


@dataclass(frozen=True)
class VersionAtLeast:
    tool: str
    version: str
    threshold: VersionTuple = field(default=(), compare=False, repr=False)
    kind = "version_at_least"


# ─── Combinators ────────────────────────────────────────────

@dataclass(frozen=True)
class AllOf:
    children: Tuple["Predicate", ...]
    kind = "all"


@dataclass(frozen=True)
class AnyOf:
    children: Tuple["Predicate", ...]
    kind = "any"


@dataclass(frozen=True)
class Not:
    child: "Predicate"
    kind = "not"


Leaf = Union[PathExists, ConfigKeyEquals, RegexPresent, VersionLessThan, VersionAtLeast]
Predicate = Union[AllOf, AnyOf, Not, Leaf]

LEAF_KINDS = ("path_exists", "config_key_equals", "regex_present", "version_less_than", "version_at_least")
COMBINATOR_KINDS = ("all", "any", "not")

_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}


def build_predicate(raw: Any, location: str = "predicate") -> Predicate:
    """
    Build a predicate tree from its declarative (YAML/JSON) form.

    Each node is a single-key mapping naming its kind. Raises ValueError
    describing the first malformed node; callers turn it into a
    RuleDefinitionError.
    """
    if not isinstance(raw, dict) or len(raw) != 1:
        raise ValueError(f"{location}: expected a mapping with exactly one node kind, got {raw!r}")

    kind, body = next(iter(raw.items()))
    where = f"{location}.{kind}"

    if kind in ("all", "any"):
        if not isinstance(body, list) or not body:
            raise ValueError(f"{where}: expected a non-empty list of predicates")
        children = tuple(build_predicate(child, f"{where}[{i}]") for i, child in enumerate(body))
        return AllOf(children) if kind == "all" else AnyOf(children)

    if kind == "not":
        return Not(build_predicate(body, where))

    if kind == "path_exists":
        path = body.get("path") if isinstance(body, dict) else body
        _check_glob(path, where)
        return PathExists(path=path)

    if kind == "config_key_equals":
        _require_keys(body, ("path", "pointer", "value"), where)
        _check_glob(body["path"], where)
        try:
            tokens = parse_pointer(body["pointer"])
        except ValueError as ex:
            raise ValueError(f"{where}: {ex}")
        return ConfigKeyEquals(path=body["path"], pointer=body["pointer"], value=body["value"], tokens=tokens)

    if kind == "regex_present":
        _require_keys(body, ("path", "pattern"), where)
        _check_glob(body["path"], where)
        flags = re.MULTILINE
        for letter in str(body.get("flags", "")):
            if letter not in _REGEX_FLAGS:
                raise ValueError(f"{where}: unknown regex flag '{letter}'")
            flags |= _REGEX_FLAGS[letter]
        try:
            compiled = re.compile(body["pattern"], flags)
        except (re.error, TypeError) as ex:
            raise ValueError(f"{where}: invalid pattern {body['pattern']!r}: {ex}")

        skip_declared = body.get("skip_declared", "")
        declared = None
        if skip_declared:
            # a match whose `ref` group names something declared earlier in the file is not a hit
            if "ref" not in compiled.groupindex:
                raise ValueError(f"{where}: 'skip_declared' needs a (?P<ref>...) group in 'pattern'")
            try:
                declared = re.compile(skip_declared, flags)
            except (re.error, TypeError) as ex:
                raise ValueError(f"{where}: invalid skip_declared {skip_declared!r}: {ex}")
            if declared.groups < 1:
                raise ValueError(f"{where}: 'skip_declared' must capture the declared name in a group")
        return RegexPresent(
            path=body["path"],
            pattern=body["pattern"],
            skip_declared=skip_declared,
            regex=compiled,
            declared=declared,
        )

    if kind in ("version_less_than", "version_at_least"):
        _require_keys(body, ("tool", "version"), where)
        if not isinstance(body["tool"], str) or not body["tool"].strip():
            raise ValueError(f"{where}: 'tool' must be a non-empty string")
        threshold = parse_version(str(body["version"]))
        if threshold is None:
            raise ValueError(f"{where}: version {body['version']!r} is not a numeric version")
        cls = VersionLessThan if kind == "version_less_than" else VersionAtLeast
        return cls(tool=body["tool"], version=str(body["version"]), threshold=threshold)

    raise ValueError(f"{location}: unknown predicate kind '{kind}' (expected one of {COMBINATOR_KINDS + LEAF_KINDS})")


def _require_keys(body: Any, keys: Tuple[str, ...], where: str) -> None:
    if not isinstance(body, dict):
        raise ValueError(f"{where}: expected a mapping with keys {list(keys)}")
    missing = [k for k in keys if k not in body]
    if missing:
        raise ValueError(f"{where}: missing {missing}")


def _check_glob(path: Any, where: str) -> None:
    try:
        validate_glob(path)
    except ValueError as ex:
        raise ValueError(f"{where}: {ex}")


def iter_leaves(predicate: Predicate) -> Iterator[Leaf]:
    if isinstance(predicate, (AllOf, AnyOf)):
        for child in predicate.children:
            yield from iter_leaves(child)
    elif isinstance(predicate, Not):
        yield from iter_leaves(predicate.child)
    else:
        yield predicate


def referenced_paths(predicate: Predicate) -> List[str]:
    return list(dict.fromkeys(
        leaf.path for leaf in iter_leaves(predicate) if hasattr(leaf, "path")
    ))


def referenced_tools(predicate: Predicate) -> List[str]:
    return list(dict.fromkeys(
        leaf.tool for leaf in iter_leaves(predicate) if isinstance(leaf, (VersionLessThan, VersionAtLeast))
    ))


def first_pointer(predicate: Predicate) -> str:
    for leaf in iter_leaves(predicate):
        if isinstance(leaf, ConfigKeyEquals):
            return leaf.pointer
    return ""


def describe(predicate: Predicate) -> Dict[str, Any]:
    """Inverse of build_predicate. Logged for rules that stay indeterminate."""
    if isinstance(predicate, (AllOf, AnyOf)):
        return {predicate.kind: [describe(c) for c in predicate.children]}
    if isinstance(predicate, Not):
        return {"not": describe(predicate.child)}
    if isinstance(predicate, PathExists):
        return {"path_exists": predicate.path}
    if isinstance(predicate, ConfigKeyEquals):
        return {"config_key_equals": {"path": predicate.path, "pointer": predicate.pointer, "value": predicate.value}}
    if isinstance(predicate, RegexPresent):
        body = {"path": predicate.path, "pattern": predicate.pattern}
        if predicate.skip_declared:
            body["skip_declared"] = predicate.skip_declared
        return {"regex_present": body}
    return {predicate.kind: {"tool": predicate.tool, "version": predicate.version}}
