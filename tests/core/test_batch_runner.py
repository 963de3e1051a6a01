import pytest

from config_audit.core.batch_runner import AuditBatchRunner, safe_audit
from config_audit.decision.tree import AuditIntent
from config_audit.rules.rule_loader import load_domain_packs


@pytest.fixture(scope="module")
def packs():
    return load_domain_packs(["docker", "go"])


def test_safe_audit_reports_failure_instead_of_raising(tmp_path, packs):
    result = safe_audit(tmp_path / "missing", packs, None, None)
    assert not result.ok
    assert result.error.startswith("CollectionError")


def test_serial_batch_keeps_input_order(make_project, packs, tmp_path):
    api = make_project({"Dockerfile": "FROM node:latest\n"}, name="api")
    worker = make_project({"go.mod": "module w\n\ngo 1.23\n"}, name="worker")
    results = AuditBatchRunner([api, tmp_path / "gone", worker], packs).run()

    assert [r.root for r in results] == [str(api), str(tmp_path / "gone"), str(worker)]
    assert [r.ok for r in results] == [True, False, True]
    assert results[0].report.has_critical
    assert results[2].report.domains == ("go",)


def test_parallel_batch_matches_serial(make_project, packs):
    roots = [
        make_project({"Dockerfile": "FROM node:20-alpine\n"}, name="one"),
        make_project({"go.mod": "module two\n\ngo 1.21\n"}, name="two"),
    ]
    intent = AuditIntent(project_state="existing")
    serial = AuditBatchRunner(roots, packs, intent=intent).run()
    parallel = AuditBatchRunner(roots, packs, intent=intent, parallel=True, max_workers=2).run()

    assert [r.ok for r in parallel] == [True, True]
    for s, p in zip(serial, parallel):
        assert s.report.findings == p.report.findings
        assert s.report.decisions == p.report.decisions
