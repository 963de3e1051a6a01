import pytest

from config_audit.collect.versions import (
    compare_versions,
    parse_version,
    version_from_node_file,
    versions_from_dockerfile,
    versions_from_go_mod,
    versions_from_package_json,
)


@pytest.mark.parametrize("raw, expected", [
    ("^1.9.4", (1, 9, 4)),
    ("~15.2", (15, 2)),
    (">=18.0.0 <20", (18, 0, 0)),
    ("1.x", (1,)),
    ("v20.11.1", (20, 11, 1)),
    ("go1.22.3", (1, 22, 3)),
    ("22-slim", (22,)),
    ("1.2 || 2.0", (1, 2)),
    ("npm:@scope/pkg@^2.1.0", (2, 1, 0)),
    ("latest", None),
    ("*", None),
    ("workspace:*", None),
    ("github:user/repo", None),
    ("", None),
    (None, None),
])
def test_parse_version(raw, expected):
    assert parse_version(raw) == expected


def test_compare_versions_pads_missing_parts():
    assert compare_versions((1, 22), (1, 22, 0)) == 0
    assert compare_versions((15, 2, 0), (16,)) == -1
    assert compare_versions((4, 0, 1), (4,)) == 1


def test_versions_from_package_json_prefers_dependencies():
    doc = {
        "dependencies": {"next": "15.1.0", "react": "^19.0.0"},
        "devDependencies": {"next": "16.0.0", "vitest": "^4.0.3"},
        "engines": {"node": ">=20"},
    }
    versions = versions_from_package_json(doc)
    assert versions["next"] == "15.1.0"
    assert versions["vitest"] == "^4.0.3"
    assert versions["node"] == ">=20"


def test_versions_from_package_json_ignores_non_objects():
    assert versions_from_package_json(["not", "a", "manifest"]) == {}
    assert versions_from_package_json({"dependencies": {"x": {"version": "1"}}}) == {}


def test_versions_from_go_mod():
    text = "module example.com/app\n\ngo 1.22.1\n\ntoolchain go1.23.4\n\nrequire golang.org/x/sync v0.7.0\n"
    assert versions_from_go_mod(text) == {"go": "1.22.1", "go-toolchain": "go1.23.4"}


def test_versions_from_dockerfile():
    text = "\n".join([
        "FROM node:22-slim AS build",
        "FROM nginx",
        "FROM scratch",
        "FROM registry.local:5000/team/app:1.2",
        "FROM --platform=linux/amd64 node:18",
        "FROM alpine@sha256:0123abcd",
    ])
    versions = versions_from_dockerfile(text)
    assert versions["docker:node"] == "22-slim"
    assert versions["docker:nginx"] == "latest"
    assert versions["docker:registry.local:5000/team/app"] == "1.2"
    assert versions["docker:alpine"] == ""
    assert "docker:scratch" not in versions


def test_versions_from_dockerfile_skips_build_stages():
    text = "FROM node:22-slim AS base\nFROM base AS deps\nFROM Base AS runner\nFROM deps\n"
    assert versions_from_dockerfile(text) == {"docker:node": "22-slim"}


def test_version_from_node_file_skips_comments():
    assert version_from_node_file("# pinned for CI\n\nv20.11.0\n") == "v20.11.0"
    assert version_from_node_file("\n# nothing\n") is None
