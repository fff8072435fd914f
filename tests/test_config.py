"""
Settings validation: policy knobs are checked when the app boots, not
when the first request builds a coordinator.
"""
import pytest
from pydantic import ValidationError

from app.core.config import Settings, settings
from app.core.errors import StorageError
from app.services.conditions import GroupPolicy
from app.services.event_completion import CheckResult, EventCompletionCoordinator, enforce_check_policy


class TestPolicySettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("EVENT_GROUP_POLICY", raising=False)
        monkeypatch.delenv("CONDITION_CHECK_FAILURES", raising=False)
        s = Settings(_env_file=None)
        assert s.EVENT_GROUP_POLICY == "any"
        assert s.CONDITION_CHECK_FAILURES == "log"

    @pytest.mark.parametrize("field,value", [
        ("EVENT_GROUP_POLICY", "anyy"),
        ("EVENT_GROUP_POLICY", "majority"),
        ("CONDITION_CHECK_FAILURES", "raises"),
        ("CONDITION_CHECK_FAILURES", "ignore"),
    ])
    def test_typo_is_rejected_at_startup(self, monkeypatch, field, value):
        monkeypatch.setenv(field, value)
        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_environment_values_are_accepted(self, monkeypatch):
        monkeypatch.setenv("EVENT_GROUP_POLICY", "all")
        monkeypatch.setenv("CONDITION_CHECK_FAILURES", "raise")
        s = Settings(_env_file=None)
        assert (s.EVENT_GROUP_POLICY, s.CONDITION_CHECK_FAILURES) == ("all", "raise")


class TestPolicyWiring:
    def test_coordinator_uses_configured_policy(self, db, monkeypatch):
        monkeypatch.setattr(settings, "EVENT_GROUP_POLICY", "all")
        assert EventCompletionCoordinator(db).policy is GroupPolicy.ALL
        assert EventCompletionCoordinator(db, policy=GroupPolicy.ANY).policy is GroupPolicy.ANY

    def test_failure_mode_follows_settings(self, monkeypatch):
        failed = CheckResult("bank", [1], ok=False, error="boom")
        enforce_check_policy([failed])

        monkeypatch.setattr(settings, "CONDITION_CHECK_FAILURES", "raise")
        with pytest.raises(StorageError):
            enforce_check_policy([failed])
