import pytest

from src.core.exceptions import InvalidTransitionError
from src.models.issue import IssueStatus
from src.services.issue_status_machine import (
    STATUS_DESCRIPTIONS,
    can_approve,
    can_auto_approve,
    can_edit,
    can_send,
    can_unapprove,
    get_allowed_next_statuses,
    get_available_actions,
    is_transition_allowed,
    validate_status_transition,
)


class TestTransitions:
    """Transition table lookups."""

    @pytest.mark.parametrize("current,target", [
        ("generating", "draft"),
        ("generating", "failed"),
        ("draft", "approved"),
        ("failed", "generating"),
        ("approved", "draft"),
        ("approved", "sent"),
    ])
    def test_allowed_transitions(self, current, target):
        assert is_transition_allowed(current, target) is True
        validate_status_transition(current, target)

    @pytest.mark.parametrize("current,target", [
        ("generating", "approved"),
        ("generating", "sent"),
        ("draft", "sent"),
        ("draft", "failed"),
        ("failed", "draft"),
        ("approved", "generating"),
        ("sent", "draft"),
        ("sent", "approved"),
    ])
    def test_disallowed_transitions(self, current, target):
        assert is_transition_allowed(current, target) is False

    def test_sent_is_terminal(self):
        """No status can be reached from sent."""
        assert get_allowed_next_statuses(IssueStatus.SENT) == []
        for status in IssueStatus:
            assert is_transition_allowed(IssueStatus.SENT, status) is False

    def test_accepts_enum_and_string(self):
        assert is_transition_allowed(IssueStatus.DRAFT, "approved")
        assert is_transition_allowed("draft", IssueStatus.APPROVED)

    def test_validate_raises_with_allowed_list(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_status_transition("draft", "sent")

        error = exc_info.value
        assert error.from_status == "draft"
        assert error.to_status == "sent"
        assert error.allowed == ["approved"]
        assert "Allowed transitions: approved" in error.message

    def test_validate_from_terminal_mentions_none(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_status_transition("sent", "draft")

        assert exc_info.value.allowed == []
        assert "Allowed transitions: none" in exc_info.value.message

    def test_unknown_status_is_rejected(self):
        with pytest.raises(ValueError):
            is_transition_allowed("archived", "draft")


class TestPredicates:
    """Derived action predicates."""

    def test_approve_and_auto_approve_only_from_draft(self):
        for status in IssueStatus:
            assert can_approve(status) is (status == IssueStatus.DRAFT)
            assert can_auto_approve(status) is (status == IssueStatus.DRAFT)

    def test_unapprove_and_send_only_from_approved(self):
        for status in IssueStatus:
            assert can_unapprove(status) is (status == IssueStatus.APPROVED)
            assert can_send(status) is (status == IssueStatus.APPROVED)

    def test_edit_from_draft_or_failed(self):
        editable = {status for status in IssueStatus if can_edit(status)}
        assert editable == {IssueStatus.DRAFT, IssueStatus.FAILED}

    def test_available_actions_for_approved(self):
        assert get_available_actions("approved") == {
            "can_approve": False,
            "can_auto_approve": False,
            "can_unapprove": True,
            "can_send": True,
            "can_edit": False,
        }

    def test_every_status_has_a_description(self):
        assert set(STATUS_DESCRIPTIONS) == set(IssueStatus)
