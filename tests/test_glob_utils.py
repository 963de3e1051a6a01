import pytest

from config_audit.utils.glob_utils import filter_paths, matches_glob, normalize_path, validate_glob


@pytest.mark.parametrize("path, pattern, expected", [
    ("middleware.ts", "{,src/}middleware.{ts,js}", True),
    ("src/middleware.js", "{,src/}middleware.{ts,js}", True),
    ("lib/middleware.ts", "{,src/}middleware.{ts,js}", False),
    ("Dockerfile", "**/Dockerfile", True),
    ("services/api/Dockerfile", "**/Dockerfile", True),
    ("Dockerfile.dev", "**/Dockerfile", False),
    ("a/b.json", "*.json", False),
    (".eslintrc.json", ".eslintrc*", True),
    ("packages/web/.eslintrc", ".eslintrc*", False),
    ("bx", "[!a]x", True),
    ("ax", "[!a]x", False),
    ("src/deep/file.ts", "src/**", True),
])
def test_matches_glob(path, pattern, expected):
    assert matches_glob(path, pattern) is expected


def test_normalize_path():
    assert normalize_path("./src\\app.ts") == "src/app.ts"
    assert normalize_path("/biome.json") == "biome.json"


def test_filter_paths_is_sorted():
    paths = ["z/Dockerfile", "Dockerfile", "a/Dockerfile", "README.md"]
    assert filter_paths(paths, "**/Dockerfile") == ["Dockerfile", "a/Dockerfile", "z/Dockerfile"]


@pytest.mark.parametrize("pattern", ["", "   ", "../outside.json", "src/../../x"])
def test_validate_glob_rejects(pattern):
    with pytest.raises(ValueError):
        validate_glob(pattern)


def test_validate_glob_accepts_relative():
    validate_glob("./biome.json")
    validate_glob("{,src/}proxy.{ts,js}")
