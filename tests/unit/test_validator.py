from __future__ import annotations

import pytest

from copilot_agent.agent.schema import SafetyConfig
from copilot_agent.agent.validator import validate_step


@pytest.mark.parametrize(
    ("candidate", "expected"),
    [
        (None, "step must be an object"),
        ("read README.md", "step must be an object"),
        (42, "step must be an object"),
        (["read", "README.md"], "step must be an object"),
        ({}, "missing action"),
        ({"action": "  ", "target": "x"}, "missing action"),
        ({"action": "delete", "target": "x"}, "unknown action 'delete'"),
        ({"action": 7, "target": "x"}, "unknown action 7"),
        ({"action": "read"}, "missing target for read"),
        ({"action": "exec", "target": "   "}, "missing target for exec"),
        ({"action": "retrieve", "target": None}, "missing target for retrieve"),
        ({"action": "write", "target": "a.txt"}, "write requires string content"),
        ({"action": "write", "target": "a.txt", "content": 3}, "write requires string content"),
        ({"action": "apply_patch"}, "apply_patch requires non-empty patch content"),
        ({"action": "apply_patch", "content": "  "}, "apply_patch requires non-empty patch content"),
    ],
)
def test_validate_step_reports_reason_for_malformed_input(candidate, expected) -> None:
    reason = validate_step(candidate, SafetyConfig())

    assert reason is not None
    assert reason.startswith(expected)


def test_validate_step_accepts_well_formed_steps() -> None:
    config = SafetyConfig()

    assert validate_step({"action": "READ", "target": "README.md"}, config) is None
    assert validate_step({"action": "write", "target": "a.txt", "content": ""}, config) is None
    assert validate_step({"action": "apply_patch", "content": "+++ b/a.txt\n+x\n"}, config) is None
    assert validate_step({"action": "retrieve", "target": "index", "topK": 2}, config) is None


def test_whitelist_matches_target_or_content_substring() -> None:
    config = SafetyConfig(whitelist=frozenset({"src/"}))

    assert validate_step({"action": "read", "target": "src/app.py"}, config) is None
    assert (
        validate_step({"action": "apply_patch", "content": "+++ b/src/app.py\n+x\n"}, config)
        is None
    )
    assert validate_step({"action": "exec", "target": "rm -rf /"}, config) == (
        "target 'rm -rf /' is not whitelisted"
    )


def test_whitelist_rejection_without_target_names_the_action() -> None:
    config = SafetyConfig(whitelist=frozenset({"docs"}))

    reason = validate_step({"action": "apply_patch", "content": "+++ b/src/app.py\n+x\n"}, config)

    assert reason == "target 'apply_patch' is not whitelisted"


def test_checks_run_in_order() -> None:
    config = SafetyConfig(whitelist=frozenset({"nothing-matches"}))

    assert validate_step({"action": "write", "target": "a.txt"}, config) == "write requires string content"
