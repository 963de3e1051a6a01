import json

import pytest

from config_audit.core.audit_runner import CancellationToken, run_audit
from config_audit.decision.tree import AuditIntent
from config_audit.errors import AuditCancelled, CollectionError
from config_audit.reports.models import FindingStatus
from config_audit.rules.rule_loader import load_domain_packs


@pytest.fixture(scope="module")
def packs():
    return load_domain_packs(["biome", "docker", "go", "nextjs", "vitest"])


def test_next_project_with_middleware(make_project, packs, fixed_clock):
    root = make_project({
        "middleware.ts": "export function middleware() {}\n",
        "package.json": json.dumps({"dependencies": {"next": "15.3.0", "react": "19.1.0"}}),
    })
    report = run_audit(root, packs, AuditIntent(project_state="existing"), clock=fixed_clock)

    assert report.generated_at == fixed_clock()
    assert report.domains == ("nextjs",)
    assert report.has_critical

    by_id = {f.rule_id: f for f in report.findings}
    assert by_id["use-proxy-ts"].status is FindingStatus.ACTIVE
    assert by_id["middleware-deprecated-warning"].status is FindingStatus.SUPPRESSED
    assert by_id["next-version-outdated"].is_active
    assert report.findings[0].rule_id == "use-proxy-ts"

    decisions = {d.domain: d for d in report.decisions}
    assert decisions["nextjs"].action == "upgrade-audit"
    assert decisions["docker"].skipped
    assert decisions["go"].skipped


def test_vitest_v4_coverage_without_include(make_project, packs, fixed_clock):
    root = make_project({
        "package.json": json.dumps({"devDependencies": {"vitest": "^4.0.2"}}),
        "vitest.config.ts": (
            "import { defineConfig } from 'vitest/config'\n"
            "export default defineConfig({\n"
            "  test: {\n"
            "    coverage: { provider: 'v8', reporter: ['text'] },\n"
            "  },\n"
            "})\n"
        ),
    })
    report = run_audit(root, packs, clock=fixed_clock)
    active = {f.rule_id for f in report.active_findings}
    assert "coverage-include-missing" in active
    assert not report.has_critical


def test_docker_latest_tag_is_critical(make_project, packs, fixed_clock):
    root = make_project({"Dockerfile": "FROM node:latest\nUSER node\n", ".dockerignore": "node_modules\n"})
    report = run_audit(root, packs, clock=fixed_clock)
    assert report.section("critical")[0].rule_id == "unpinned-base-image"
    assert {f.rule_id for f in report.active_findings} >= {"unpinned-base-image"}
    assert "runs-as-root" not in {f.rule_id for f in report.active_findings}


def test_pinned_dockerfile_has_no_critical(make_project, packs, fixed_clock):
    root = make_project({"Dockerfile": "FROM node:22-slim\nUSER node\n", ".dockerignore": "node_modules\n"})
    report = run_audit(root, packs, clock=fixed_clock)
    assert not report.has_critical


def test_unreadable_config_never_becomes_a_finding(make_project, packs, fixed_clock):
    root = make_project({"biome.json": '{"linter": ', "package.json": "{}"})
    report = run_audit(root, packs, AuditIntent(requested_domains=("biome",)), clock=fixed_clock)
    assert "unsafe-fix-not-promoted" not in {f.rule_id for f in report.findings}
    assert "biome.json" in [s.key for s in report.unavailable_signals]
    assert "biome/unsafe-fix-not-promoted" in report.indeterminate_rules


def test_requested_domains_limit_the_run(make_project, packs, fixed_clock):
    root = make_project({"Dockerfile": "FROM node\n", "go.mod": "module x\n\ngo 1.20\n"})
    report = run_audit(root, packs, AuditIntent(requested_domains=("go",)), clock=fixed_clock)
    assert report.domains == ("go",)
    assert {f.domain for f in report.findings} == {"go"}
    assert "go-version-outdated" in {f.rule_id for f in report.findings}


def test_same_input_same_report(make_project, packs, fixed_clock):
    root = make_project({
        "biome.json": '{"vcs": {"enabled": false}}',
        ".eslintrc.json": "{}",
        "Dockerfile": "FROM node:18\n",
        "go.mod": "module x\n\ngo 1.21\n",
    })
    first = run_audit(root, packs, clock=fixed_clock)
    second = run_audit(root, packs, clock=fixed_clock)
    assert first == second


def test_missing_root_raises(tmp_path, packs):
    with pytest.raises(CollectionError):
        run_audit(tmp_path / "nope", packs)


def test_cancelled_before_collection(make_project, packs):
    token = CancellationToken()
    token.cancel()
    with pytest.raises(AuditCancelled) as exc:
        run_audit(make_project({}), packs, cancel_token=token)
    assert exc.value.stage == "decide"
