import os
import time

import pytest

from config_audit.collect.collector import ProjectStateCollector
from config_audit.collect.signals import SignalEntry
from config_audit.config.profile_loader import AuditProfile
from config_audit.errors import CollectionError
from config_audit.rules.predicates import build_predicate

running_as_root = hasattr(os, "geteuid") and os.geteuid() == 0


@pytest.fixture
def config_catalog(build_rule, build_catalog):
    return build_catalog("sample", [
        build_rule("biome-vcs", {"config_key_equals": {"path": "biome.json", "pointer": "/vcs/enabled", "value": True}},
                   targets=["biome.json"]),
        build_rule("biome-schema", {"regex_present": {"path": "biome.json", "pattern": "schemas"}}, targets=["biome.json"]),
    ])


def test_missing_root_raises(tmp_path):
    with pytest.raises(CollectionError, match="no such directory"):
        ProjectStateCollector().collect(tmp_path / "absent", [])


def test_file_root_raises(tmp_path):
    path = tmp_path / "file.txt"
    path.write_text("x")
    with pytest.raises(CollectionError, match="not a directory"):
        ProjectStateCollector().collect(path, [])


def test_collects_only_referenced_files(make_project, config_catalog):
    root = make_project({
        "biome.json": '{"$schema": "https://biomejs.dev/schemas/2.0.0/schema.json", "vcs": {"enabled": true}}',
        "README.md": "# hello",
        "node_modules/pkg/biome.json": "{}",
    })
    signal = ProjectStateCollector().collect(root, config_catalog.rules)

    assert signal.files == ("biome.json",)
    assert signal.configs["biome.json"].value["vcs"] == {"enabled": True}
    match = signal.regex_entries("sample/biome-schema", "biome.json::schemas")["biome.json"].value[0]
    assert (match.file, match.line, match.text) == ("biome.json", 1, "schemas")
    assert signal.unavailable() == []


def test_excluded_dirs_come_from_profile(make_project, build_rule, build_catalog):
    catalog = build_catalog("sample", [build_rule("any-dockerfile", {"path_exists": "**/Dockerfile"})])
    root = make_project({"Dockerfile": "", "examples/Dockerfile": ""})
    profile = AuditProfile(exclude_dirs=("examples",))
    signal = ProjectStateCollector(profile).collect(root, catalog.rules)
    assert signal.files_matching("**/Dockerfile") == ["Dockerfile"]


def test_parse_error_becomes_unavailable(make_project, config_catalog):
    root = make_project({"biome.json": '{"vcs": '})
    signal = ProjectStateCollector().collect(root, config_catalog.rules)
    entry = signal.configs["biome.json"]
    assert not entry.available
    assert entry.reason.startswith("parse error")
    assert [e.key for e in signal.unavailable()] == ["biome.json"]


def test_undecodable_file_is_unavailable_once(make_project, config_catalog):
    root = make_project({"biome.json": b"\xff\xfe\x00garbage"})
    signal = ProjectStateCollector().collect(root, config_catalog.rules)
    unavailable = signal.unavailable()
    # the config and regex tables both hold the entry; it is reported once
    assert [(e.key, e.reason) for e in unavailable] == [("biome.json", "not valid UTF-8")]


def test_oversized_file_is_unavailable(make_project, config_catalog):
    root = make_project({"biome.json": '{"vcs": {"enabled": true}}'})
    signal = ProjectStateCollector(AuditProfile(max_file_bytes=8)).collect(root, config_catalog.rules)
    assert signal.configs["biome.json"].reason.startswith("file too large")


def test_slow_read_times_out(make_project, config_catalog, monkeypatch):
    root = make_project({"biome.json": "{}"})
    original = ProjectStateCollector._read_text

    def slow_read(self, root_path, rel):
        time.sleep(1.0)
        return original(self, root_path, rel)

    monkeypatch.setattr(ProjectStateCollector, "_read_text", slow_read)
    signal = ProjectStateCollector(AuditProfile(signal_timeout=0.05)).collect(root, config_catalog.rules)
    assert signal.configs["biome.json"] == SignalEntry.unavailable("biome.json", "timeout")


@pytest.mark.skipif(running_as_root or os.name == "nt", reason="directory permissions are not enforced")
def test_unreadable_directory_is_recorded(make_project, build_rule, build_catalog):
    catalog = build_catalog("sample", [build_rule("any-dockerfile", {"path_exists": "**/Dockerfile"})])
    root = make_project({"locked/Dockerfile": ""})
    locked = root / "locked"
    locked.chmod(0)
    try:
        signal = ProjectStateCollector().collect(root, catalog.rules)
    finally:
        locked.chmod(0o755)
    assert [e.key for e in signal.unreadable_dirs] == ["locked/"]
    assert signal.files == ()


def test_tool_versions(make_project, build_rule, build_catalog):
    catalog = build_catalog("sample", [
        build_rule("node", {"version_at_least": {"tool": "node", "version": "20"}}),
        build_rule("next", {"version_at_least": {"tool": "next", "version": "16"}}),
        build_rule("go", {"version_at_least": {"tool": "go", "version": "1.22"}}),
        build_rule("image", {"version_at_least": {"tool": "docker:node", "version": "20"}}),
        build_rule("absent", {"version_at_least": {"tool": "vitest", "version": "4"}}),
    ])
    root = make_project({
        ".nvmrc": "v22.11.0\n",
        "package.json": '{"engines": {"node": ">=18"}, "dependencies": {"next": "16.0.1"}}',
        "go.mod": "module example.com/app\n\ngo 1.23\n",
        "Dockerfile": "FROM node:22-slim AS build\n",
    })
    tools = ProjectStateCollector().collect(root, catalog.rules).tools

    assert tools["node"].value == "v22.11.0"
    assert tools["next"].value == "16.0.1"
    assert tools["go"].value == "1.23"
    assert tools["docker:node"].value == "22-slim"
    assert "vitest" not in tools


def test_broken_package_json_makes_tool_unavailable(make_project, build_rule, build_catalog):
    catalog = build_catalog("sample", [build_rule("next", {"version_at_least": {"tool": "next", "version": "16"}})])
    root = make_project({"package.json": "{not json"})
    entry = ProjectStateCollector().collect(root, catalog.rules).tools["next"]
    assert not entry.available
    assert entry.key == "tool:next"
    assert entry.reason.startswith("package.json: malformed JSON")


def test_probe_collects_for_bare_predicates(make_project):
    root = make_project({"go.mod": "module x\n\ngo 1.22\n"})
    signal = ProjectStateCollector().probe(root, {
        "go/decision/has-go-module": build_predicate({"path_exists": "go.mod"}),
    })
    assert signal.files == ("go.mod",)


def test_collector_never_writes(make_project, config_catalog):
    root = make_project({"biome.json": "{}"})
    before = sorted((p.relative_to(root).as_posix(), p.stat().st_mtime_ns) for p in root.rglob("*"))
    ProjectStateCollector().collect(root, config_catalog.rules)
    after = sorted((p.relative_to(root).as_posix(), p.stat().st_mtime_ns) for p in root.rglob("*"))
    assert before == after
