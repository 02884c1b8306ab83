"""
Issue publication status machine.

    generating -> draft | failed
    draft      -> approved
    failed     -> generating
    approved   -> draft | sent
    sent       -> (terminal)

Pure functions over the transition table. Callers pass the current status in;
nothing here touches the database.
"""

from typing import Dict, List, Tuple, Union

from src.core.exceptions import InvalidTransitionError
from src.models.issue import IssueStatus

StatusLike = Union[IssueStatus, str]

ALLOWED_TRANSITIONS: Dict[IssueStatus, Tuple[IssueStatus, ...]] = {
    IssueStatus.GENERATING: (IssueStatus.DRAFT, IssueStatus.FAILED),
    IssueStatus.DRAFT: (IssueStatus.APPROVED,),
    IssueStatus.FAILED: (IssueStatus.GENERATING,),
    IssueStatus.APPROVED: (IssueStatus.DRAFT, IssueStatus.SENT),
    IssueStatus.SENT: (),
}

STATUS_DESCRIPTIONS: Dict[IssueStatus, str] = {
    IssueStatus.GENERATING: "Content is being generated by AI",
    IssueStatus.DRAFT: "Content is ready for review",
    IssueStatus.FAILED: "Content generation failed",
    IssueStatus.APPROVED: "Content is approved and ready to send",
    IssueStatus.SENT: "Newsletter has been sent to subscribers",
}


def _status(value: StatusLike) -> IssueStatus:
    return value if isinstance(value, IssueStatus) else IssueStatus(value)


def get_allowed_next_statuses(current: StatusLike) -> List[str]:
    return [status.value for status in ALLOWED_TRANSITIONS[_status(current)]]


def is_transition_allowed(current: StatusLike, target: StatusLike) -> bool:
    return _status(target) in ALLOWED_TRANSITIONS[_status(current)]


def validate_status_transition(current: StatusLike, target: StatusLike) -> None:
    """Raise InvalidTransitionError unless current -> target is in the table."""
    if not is_transition_allowed(current, target):
        raise InvalidTransitionError(
            _status(current).value,
            _status(target).value,
            get_allowed_next_statuses(current),
        )


def can_approve(status: StatusLike) -> bool:
    return _status(status) == IssueStatus.DRAFT


def can_unapprove(status: StatusLike) -> bool:
    return _status(status) == IssueStatus.APPROVED


def can_send(status: StatusLike) -> bool:
    return _status(status) == IssueStatus.APPROVED


def can_auto_approve(status: StatusLike) -> bool:
    return _status(status) == IssueStatus.DRAFT


def can_edit(status: StatusLike) -> bool:
    return _status(status) in (IssueStatus.DRAFT, IssueStatus.FAILED)


def get_available_actions(status: StatusLike) -> Dict[str, bool]:
    return {
        "can_approve": can_approve(status),
        "can_auto_approve": can_auto_approve(status),
        "can_unapprove": can_unapprove(status),
        "can_send": can_send(status),
        "can_edit": can_edit(status),
    }
