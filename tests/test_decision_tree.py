import pickle

import pytest

from config_audit.collect.collector import ProjectStateCollector
from config_audit.config.defaults import get_catalog_path
from config_audit.decision.tree import AuditIntent, DecisionTreeWalker
from config_audit.errors import RuleDefinitionError
from config_audit.rules.rule_loader import load_catalog_from_yaml


def _leaf(node_id, **action):
    action.setdefault("name", node_id)
    return {"id": node_id, "action": action}


def _question(node_id, yes, no, fallback="no", **question):
    return {"id": node_id, "question": question, "yes": yes, "no": no, "fallback": fallback}


@pytest.fixture
def rules(build_rule):
    return [
        build_rule("keep", {"path_exists": "a"}),
        build_rule("drop", {"path_exists": "b"}),
    ]


@pytest.fixture
def intent_catalog(build_catalog, rules):
    return build_catalog("sample", rules, tree={
        "root": "is-new",
        "nodes": [
            _question("is-new", "fresh", "existing", fallback="no", intent={"key": "new_project"}),
            _leaf("fresh", enable_only=["keep"]),
            _leaf("existing", disable=["keep"]),
        ],
    })


def test_intent_answer_selects_branch(intent_catalog):
    outcome = DecisionTreeWalker().walk(intent_catalog, AuditIntent(project_state="new"))
    assert outcome.action == "fresh"
    assert outcome.path == ("is-new", "fresh")
    assert outcome.fallbacks == ()
    assert outcome.catalog.rule_ids == ("keep",)


def test_missing_intent_uses_fallback(intent_catalog):
    outcome = DecisionTreeWalker().walk(intent_catalog, AuditIntent())
    assert outcome.action == "existing"
    assert outcome.fallbacks == ("is-new",)
    assert outcome.catalog.rule_ids == ("drop",)


def test_intent_equals_comparison(build_catalog, rules):
    catalog = build_catalog("sample", rules, tree={
        "root": "runtime",
        "nodes": [
            _question("runtime", "bun", "other", intent={"key": "runtime", "equals": "bun"}),
            _leaf("bun", skip_domain=True),
            _leaf("other"),
        ],
    })
    walker = DecisionTreeWalker()
    assert walker.walk(catalog, AuditIntent(answers={"runtime": "bun"})).skipped
    outcome = walker.walk(catalog, AuditIntent(answers={"runtime": "node"}))
    assert not outcome.skipped
    assert outcome.catalog.rule_ids == ("keep", "drop")


def test_signal_question_uses_probe(build_catalog, rules, make_project):
    catalog = build_catalog("sample", rules, tree={
        "root": "has-go",
        "nodes": [
            _question("has-go", "audit", "skip", fallback="yes", signal={"path_exists": "go.mod"}),
            _leaf("audit"),
            _leaf("skip", skip_domain=True),
        ],
    })
    tree = catalog.decision_tree
    walker = DecisionTreeWalker()

    with_go = ProjectStateCollector().probe(make_project({"go.mod": "module x\n"}, name="go"), tree.signal_questions())
    without_go = ProjectStateCollector().probe(make_project({}, name="empty"), tree.signal_questions())

    assert walker.walk(catalog, AuditIntent(), with_go).action == "audit"
    assert walker.walk(catalog, AuditIntent(), without_go).action == "skip"
    # no probe at all: the fallback branch decides
    no_probe = walker.walk(catalog, AuditIntent(), None)
    assert no_probe.action == "audit"
    assert no_probe.fallbacks == ("has-go",)


def test_catalog_without_tree_is_used_whole(build_catalog, rules):
    catalog = build_catalog("plain", rules)
    outcome = DecisionTreeWalker().walk(catalog, AuditIntent())
    assert outcome.action == "default"
    assert outcome.catalog is catalog


@pytest.mark.parametrize("nodes, root, fragment", [
    ([_leaf("a"), _leaf("a")], "a", "duplicate node id"),
    ([_question("q", "a", "ghost", intent={"key": "k"}), _leaf("a")], "q", "branch target 'ghost'"),
    ([_leaf("a")], "missing", "root 'missing'"),
    ([_question("q1", "q2", "a", intent={"key": "k"}), _question("q2", "q1", "a", intent={"key": "k"}), _leaf("a")],
     "q1", "cycle"),
    ([_leaf("a"), _leaf("orphan")], "a", "unreachable nodes ['orphan']"),
    ([_leaf("a", enable_only=["nope"])], "a", "unknown rule ids ['nope']"),
    ([_question("q", "a", "a", intent={"key": "k"}, signal={"path_exists": "x"}), _leaf("a")], "q", "exactly one"),
])
def test_invalid_trees_are_rejected(build_catalog, rules, nodes, root, fragment):
    with pytest.raises(RuleDefinitionError, match=fragment.replace("[", r"\[").replace("]", r"\]")):
        build_catalog("sample", rules, tree={"root": root, "nodes": nodes})


def test_docker_tree_skips_projects_without_containers(make_project):
    docker = load_catalog_from_yaml(get_catalog_path("docker"))
    signal = ProjectStateCollector().probe(make_project({"package.json": "{}"}), docker.decision_tree.signal_questions())
    walker = DecisionTreeWalker()

    skipped = walker.walk(docker, AuditIntent(), signal)
    assert skipped.skipped
    assert skipped.path == ("has-dockerfile", "wants-container", "no-dockerfile-needed")
    assert skipped.fallbacks == ("wants-container",)

    wanted = walker.walk(docker, AuditIntent(answers={"wants_container": True}), signal)
    assert wanted.catalog.rule_ids == ("missing-dockerfile",)


def test_trees_survive_pickling(intent_catalog):
    clone = pickle.loads(pickle.dumps(intent_catalog.decision_tree))
    assert clone.nodes["is-new"].intent_key == "new_project"
    assert not clone.nodes["is-new"].compares
