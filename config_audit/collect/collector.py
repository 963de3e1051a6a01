import os
import re
import stat
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

from config_audit.collect.parsers import UnsupportedFormat, parse_document
from config_audit.collect.signals import ProjectSignal, RegexMatch, RegexTable, SignalEntry
from config_audit.collect.versions import (
    version_from_node_file,
    versions_from_dockerfile,
    versions_from_go_mod,
    versions_from_package_json,
)
from config_audit.config.profile_loader import AuditProfile
from config_audit.errors import CollectionError
from config_audit.rules.predicates import ConfigKeyEquals, Predicate, RegexPresent, iter_leaves, referenced_paths, referenced_tools
from config_audit.rules.rule_model import DetectionRule
from config_audit.utils.glob_utils import matches_any, matches_glob
from config_audit.utils.logger import get_logger

# Files consulted to resolve tool versions, by tool family.
NODE_VERSION_FILES = (".nvmrc", ".node-version")
PACKAGE_JSON = "package.json"
GO_MOD = "go.mod"
DOCKERFILE = "Dockerfile"

MAX_MATCHES_PER_FILE = 20

# scope (rule id or decision node) → (predicate, extra target patterns)
CollectionRequest = Mapping[str, Tuple[Predicate, Sequence[str]]]


class ProjectStateCollector:
    """
    Reads the parts of a project that a rule set references and nothing else.

    Never writes to the target tree. A file that cannot be read, decoded,
    parsed or read in time becomes an unavailable SignalEntry; only an
    unreadable root raises CollectionError.
    """

    def __init__(self, profile: Optional[AuditProfile] = None):
        self.profile = profile or AuditProfile()
        self.logger = get_logger()

    def collect(self, root: Union[str, Path], active_rules: Iterable[DetectionRule]) -> ProjectSignal:
        requests = {rule.scope: (rule.predicate, rule.target_patterns) for rule in active_rules}
        return self._collect(root, requests)

    def probe(self, root: Union[str, Path], predicates: Mapping[str, Predicate]) -> ProjectSignal:
        """Collect for bare predicates keyed by scope; used by decision trees before the main run."""
        return self._collect(root, {scope: (pred, ()) for scope, pred in predicates.items()})

    # ─── Pipeline ───────────────────────────────────────

    def _collect(self, root: Union[str, Path], requests: CollectionRequest) -> ProjectSignal:
        root_path = self._check_root(root)

        patterns: List[str] = []
        tools: List[str] = []
        for predicate, targets in requests.values():
            patterns.extend(targets)
            patterns.extend(referenced_paths(predicate))
            tools.extend(referenced_tools(predicate))
        patterns = list(dict.fromkeys(patterns))
        tools = list(dict.fromkeys(tools))
        tool_files = self._tool_source_files(tools)

        files, unreadable = self._list_files(root_path, patterns + list(tool_files))
        self.logger.debug(f"[Collector] {len(files)} referenced file(s) under {root_path}")

        config_paths = self._config_paths(requests, files)
        regex_paths = self._regex_paths(requests, files)
        to_read = sorted(set(config_paths) | set(regex_paths) | (set(tool_files) & set(files)))
        texts = self._read_all(root_path, to_read)

        signal = ProjectSignal(
            root=str(root_path),
            files=tuple(sorted(f for f in files if matches_any(f, patterns))),
            unreadable_dirs=tuple(unreadable),
            configs={path: self._parse_config(path, texts[path]) for path in config_paths},
            tools=self._resolve_tools(tools, texts),
            regex_matches=self._match_regexes(requests, files, texts),
        )

        missing = signal.unavailable()
        if missing:
            self.logger.warning(f"[Collector] {len(missing)} signal(s) unavailable: {[e.key for e in missing]}")
        return signal

    def _check_root(self, root: Union[str, Path]) -> Path:
        root_path = Path(root)
        if not root_path.exists():
            raise CollectionError(root, "no such directory")
        if not root_path.is_dir():
            raise CollectionError(root, "not a directory")
        try:
            with os.scandir(root_path):
                pass
        except OSError as ex:
            raise CollectionError(root, ex.strerror or str(ex))
        return root_path.resolve()

    def _list_files(self, root_path: Path, patterns: Sequence[str]) -> Tuple[List[str], List[SignalEntry]]:
        excluded = set(self.profile.exclude_dirs)
        unreadable: List[SignalEntry] = []
        files: List[str] = []

        def on_error(err: OSError):
            rel = Path(err.filename).relative_to(root_path).as_posix() if err.filename else "?"
            self.logger.warning(f"[Collector] Cannot list {rel}: {err.strerror}")
            unreadable.append(SignalEntry.unavailable(f"{rel}/", f"unreadable directory: {err.strerror}"))

        for dirpath, dirnames, filenames in os.walk(root_path, onerror=on_error):
            dirnames[:] = sorted(d for d in dirnames if d not in excluded)
            rel_dir = Path(dirpath).relative_to(root_path).as_posix()
            for name in filenames:
                rel = name if rel_dir == "." else f"{rel_dir}/{name}"
                if matches_any(rel, patterns):
                    files.append(rel)

        return sorted(files), sorted(unreadable, key=lambda e: e.key)

    # ─── Reads ──────────────────────────────────────────

    def _read_all(self, root_path: Path, paths: Sequence[str]) -> Dict[str, SignalEntry]:
        """Read each file on a worker thread; a read slower than signal_timeout becomes unavailable."""
        results: Dict[str, SignalEntry] = {}
        if not paths:
            return results

        executor = ThreadPoolExecutor(max_workers=self.profile.read_workers, thread_name_prefix="audit-read")
        try:
            futures = {path: executor.submit(self._read_text, root_path, path) for path in paths}
            for path, future in futures.items():
                try:
                    results[path] = future.result(timeout=self.profile.signal_timeout)
                except FutureTimeout:
                    future.cancel()
                    self.logger.warning(f"[Collector] Read of {path} exceeded {self.profile.signal_timeout}s")
                    results[path] = SignalEntry.unavailable(path, "timeout")
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return results

    def _read_text(self, root_path: Path, rel: str) -> SignalEntry:
        path = root_path / rel
        try:
            info = path.stat()
            if not stat.S_ISREG(info.st_mode):
                return SignalEntry.unavailable(rel, "not a regular file")
            size = info.st_size
            if size > self.profile.max_file_bytes:
                return SignalEntry.unavailable(rel, f"file too large ({size} bytes)")
            return SignalEntry(key=rel, value=path.read_text(encoding="utf-8-sig"))
        except UnicodeDecodeError:
            return SignalEntry.unavailable(rel, "not valid UTF-8")
        except OSError as ex:
            return SignalEntry.unavailable(rel, f"read error: {ex.strerror or ex}")

    # ─── Config documents ───────────────────────────────

    def _config_paths(self, requests: CollectionRequest, files: Sequence[str]) -> List[str]:
        globs = {leaf.path for pred, _ in requests.values() for leaf in iter_leaves(pred) if isinstance(leaf, ConfigKeyEquals)}
        return sorted(f for f in files if any(matches_glob(f, g) for g in globs))

    def _parse_config(self, path: str, text: SignalEntry) -> SignalEntry:
        if not text.available:
            return text
        try:
            return SignalEntry(key=path, value=parse_document(path, text.value))
        except UnsupportedFormat as ex:
            return SignalEntry.unavailable(path, str(ex))
        except ValueError as ex:
            self.logger.warning(f"[Collector] Cannot parse {path}: {ex}")
            return SignalEntry.unavailable(path, f"parse error: {ex}")

    # ─── Regex table ────────────────────────────────────

    def _regex_paths(self, requests: CollectionRequest, files: Sequence[str]) -> List[str]:
        globs = {leaf.path for pred, _ in requests.values() for leaf in iter_leaves(pred) if isinstance(leaf, RegexPresent)}
        return sorted(f for f in files if any(matches_glob(f, g) for g in globs))

    def _match_regexes(self, requests: CollectionRequest, files: Sequence[str], texts: Dict[str, SignalEntry]) -> RegexTable:
        table: RegexTable = {}
        for scope, (predicate, _) in requests.items():
            for leaf in iter_leaves(predicate):
                if not isinstance(leaf, RegexPresent):
                    continue
                per_file: Dict[str, SignalEntry] = {}
                for path in files:
                    if not matches_glob(path, leaf.path):
                        continue
                    text = texts[path]
                    if not text.available:
                        per_file[path] = text
                        continue
                    per_file[path] = SignalEntry(key=path, value=self._find_matches(path, text.value, leaf))
                table.setdefault(scope, {})[leaf.key] = per_file
        return table

    @staticmethod
    def _find_matches(path: str, text: str, leaf: RegexPresent) -> Tuple[RegexMatch, ...]:
        fold = str.casefold if leaf.regex.flags & re.IGNORECASE else str
        declared = []
        if leaf.declared is not None:
            declared = [(d.start(), fold(d.group(1))) for d in leaf.declared.finditer(text) if d.group(1)]

        matches = []
        for m in leaf.regex.finditer(text):
            ref = m.group("ref") if declared else None
            if ref and any(start < m.start() and name == fold(ref) for start, name in declared):
                continue
            line = text.count("\n", 0, m.start()) + 1
            snippet = m.group(0).strip().splitlines()[0] if m.group(0).strip() else ""
            matches.append(RegexMatch(file=path, line=line, start=m.start(), end=m.end(), text=snippet[:200]))
            if len(matches) >= MAX_MATCHES_PER_FILE:
                break
        return tuple(matches)

    # ─── Tool versions ──────────────────────────────────

    @staticmethod
    def _tool_source_files(tools: Sequence[str]) -> Set[str]:
        sources: Set[str] = set()
        for tool in tools:
            if tool == "node":
                sources.update(NODE_VERSION_FILES)
                sources.add(PACKAGE_JSON)
            elif tool in ("go", "go-toolchain"):
                sources.add(GO_MOD)
            elif tool.startswith("docker:"):
                sources.add(DOCKERFILE)
            else:
                sources.add(PACKAGE_JSON)
        return sources

    def _resolve_tools(self, tools: Sequence[str], texts: Dict[str, SignalEntry]) -> Dict[str, SignalEntry]:
        resolved: Dict[str, SignalEntry] = {}
        for tool in tools:
            entry = self._resolve_tool(tool, texts)
            if entry is not None:
                resolved[tool] = entry
        return resolved

    def _resolve_tool(self, tool: str, texts: Dict[str, SignalEntry]) -> Optional[SignalEntry]:
        key = f"tool:{tool}"

        if tool == "node":
            for name in NODE_VERSION_FILES:
                source = texts.get(name)
                if source is None:
                    continue
                if not source.available:
                    return SignalEntry.unavailable(key, f"{name}: {source.reason}")
                version = version_from_node_file(source.value)
                if version:
                    return SignalEntry(key=key, value=version)
            return self._from_source(key, tool, PACKAGE_JSON, texts, self._package_json_versions)

        if tool in ("go", "go-toolchain"):
            return self._from_source(key, tool, GO_MOD, texts, versions_from_go_mod)

        if tool.startswith("docker:"):
            return self._from_source(key, tool, DOCKERFILE, texts, versions_from_dockerfile)

        return self._from_source(key, tool, PACKAGE_JSON, texts, self._package_json_versions)

    @staticmethod
    def _from_source(key: str, tool: str, name: str, texts: Dict[str, SignalEntry], extract) -> Optional[SignalEntry]:
        source = texts.get(name)
        if source is None:
            return None
        if not source.available:
            return SignalEntry.unavailable(key, f"{name}: {source.reason}")
        try:
            versions = extract(source.value)
        except ValueError as ex:
            return SignalEntry.unavailable(key, f"{name}: {ex}")
        if tool not in versions:
            return None
        return SignalEntry(key=key, value=versions[tool])

    @staticmethod
    def _package_json_versions(text: str) -> Dict[str, str]:
        return versions_from_package_json(parse_document(PACKAGE_JSON, text))
