import pytest

from gatedci.conditions import always, event, failure, parse_condition, ref, success
from gatedci.errors import ConditionSyntaxError
from gatedci.model import InstanceResult, Outcome, TriggerContext

OK = InstanceResult(Outcome.SUCCESS, Outcome.SUCCESS)
FAILED = InstanceResult(Outcome.FAILURE, Outcome.FAILURE)
MASKED = InstanceResult(Outcome.FAILURE, Outcome.SUCCESS)
SKIPPED = InstanceResult(Outcome.SKIPPED, Outcome.SKIPPED)

PUSH_MAIN = TriggerContext(event="push", ref="refs/heads/main")
PR = TriggerContext(event="pull_request", ref="refs/pull/7/merge")


def test_success_ignores_skipped_and_masked_failures():
    assert success().evaluate(PUSH_MAIN, {"a": OK, "b": SKIPPED, "c": MASKED})
    assert not success().evaluate(PUSH_MAIN, {"a": OK, "b": FAILED})
    assert success().evaluate(PUSH_MAIN, {})


def test_failure_and_always():
    assert failure().evaluate(PUSH_MAIN, {"a": FAILED})
    assert not failure().evaluate(PUSH_MAIN, {"a": MASKED})
    assert always().evaluate(PUSH_MAIN, {"a": FAILED})
    assert always().always_runs and failure().always_runs
    assert not success().always_runs


def test_event_and_ref_predicates():
    assert event("pull_request").evaluate(PR, {})
    assert not event("pull_request").evaluate(PUSH_MAIN, {})
    assert ref("refs/heads/main").evaluate(PUSH_MAIN, {})
    assert ref("main").evaluate(PUSH_MAIN, {})
    assert ref("release/*").evaluate(TriggerContext(ref="refs/heads/release/1.2"), {})


def test_parse_upload_condition():
    cond = parse_condition("event == 'pull_request' || ref == 'refs/heads/main'")
    assert cond.evaluate(PR, {})
    assert cond.evaluate(PUSH_MAIN, {})
    assert not cond.evaluate(TriggerContext(event="push", ref="refs/heads/feature"), {})


def test_and_binds_tighter_than_or():
    cond = parse_condition("event == 'push' && ref == 'dev' || event == 'pull_request'")
    assert cond.evaluate(PR, {})
    assert not cond.evaluate(PUSH_MAIN, {})
    assert cond.evaluate(TriggerContext(event="push", ref="refs/heads/dev"), {})


def test_negation_and_wrapper():
    cond = parse_condition("${{ !event == \"push\" }}")
    assert cond.evaluate(PR, {})
    assert not cond.evaluate(PUSH_MAIN, {})


def test_combinators_keep_always_runs():
    assert (success() | always()).always_runs
    assert not (success() & always()).always_runs
    assert not (~always()).always_runs


@pytest.mark.parametrize("text", ["", "github.event_name == 'push'", "success() ||", "contains(needs, 'x')"])
def test_unsupported_conditions_raise(text):
    with pytest.raises(ConditionSyntaxError):
        parse_condition(text)


def test_equality_by_expression():
    assert parse_condition("always()") == always()
    assert str(event("push") | ref("main")) == "event == 'push' || ref == 'main'"


@pytest.mark.parametrize(
    "text, trigger, expected",
    [
        ("ref == 'refs/heads/a||b'", TriggerContext("push", "refs/heads/a||b"), True),
        ("ref == 'refs/heads/a||b'", TriggerContext("push", "refs/heads/a"), False),
        ('event == "x&&y" || ref == \'main\'', TriggerContext("x&&y"), True),
        ('event == "x&&y" && ref == \'main\'', TriggerContext("x&&y", "refs/heads/dev"), False),
    ],
)
def test_operators_inside_quotes_are_part_of_the_value(text, trigger, expected):
    assert parse_condition(text).evaluate(trigger, {}) is expected


def test_explicit_condition_replaces_default_success():
    after_failure = {"build": FAILED}
    assert parse_condition("event == 'pull_request'").evaluate(PR, after_failure)
    assert not parse_condition("success() && event == 'pull_request'").evaluate(PR, after_failure)
    assert parse_condition("success() && event == 'pull_request'").evaluate(PR, {"build": OK})
