"""Expense status workflow as the console renders it.

The backend owns enforcement. Here the graph only decides which controls are
offered and which requests are refused before they are sent.
"""

from dataclasses import dataclass
from typing import Optional

from pydantic import Field

from expense_console.core.errors import client_error
from expense_console.schemas.auth import User
from expense_console.schemas.common import CamelModel
from expense_console.schemas.expense import Expense, ExpenseStatus


@dataclass(frozen=True)
class StatusInfo:
    label: str
    icon: str
    color: str
    description: str
    next_states: tuple[ExpenseStatus, ...]


STATUS_TABLE: dict[ExpenseStatus, StatusInfo] = {
    ExpenseStatus.DRAFT: StatusInfo(
        label="Draft",
        icon="clock",
        color="gray",
        description="Expense is being prepared",
        next_states=(ExpenseStatus.SUBMITTED,),
    ),
    ExpenseStatus.SUBMITTED: StatusInfo(
        label="Submitted",
        icon="alert-circle",
        color="blue",
        description="Waiting for approval",
        next_states=(ExpenseStatus.APPROVED, ExpenseStatus.DRAFT),
    ),
    ExpenseStatus.APPROVED: StatusInfo(
        label="Approved",
        icon="check-circle",
        color="green",
        description="Approved for payment",
        next_states=(ExpenseStatus.PAID, ExpenseStatus.SUBMITTED),
    ),
    ExpenseStatus.PAID: StatusInfo(
        label="Paid",
        icon="dollar-sign",
        color="purple",
        description="Payment has been processed",
        next_states=(ExpenseStatus.CLOSED,),
    ),
    ExpenseStatus.CLOSED: StatusInfo(
        label="Closed",
        icon="archive",
        color="gray",
        description="Expense is complete",
        next_states=(),
    ),
}

TRANSITION_LABELS: dict[tuple[ExpenseStatus, ExpenseStatus], str] = {
    (ExpenseStatus.DRAFT, ExpenseStatus.SUBMITTED): "Submit for Approval",
    (ExpenseStatus.SUBMITTED, ExpenseStatus.APPROVED): "Approve Expense",
    (ExpenseStatus.SUBMITTED, ExpenseStatus.DRAFT): "Return to Draft",
    (ExpenseStatus.APPROVED, ExpenseStatus.PAID): "Mark as Paid",
    (ExpenseStatus.APPROVED, ExpenseStatus.SUBMITTED): "Return for Review",
    (ExpenseStatus.PAID, ExpenseStatus.CLOSED): "Close Expense",
}

_TARGET_DESCRIPTIONS = {
    ExpenseStatus.SUBMITTED: "Submit this expense for approval by an accountant.",
    ExpenseStatus.APPROVED: "Approve this expense for payment processing.",
    ExpenseStatus.DRAFT: "Return this expense to draft status for modifications.",
    ExpenseStatus.PAID: "Mark this expense as paid and processed.",
    ExpenseStatus.CLOSED: "Close this expense. No further changes will be allowed.",
}


class StatusBadge(CamelModel):
    status: ExpenseStatus
    label: str
    icon: str
    color: str
    description: str


class TransitionOption(CamelModel):
    target_status: ExpenseStatus
    label: str
    description: str
    notes_required: bool = False


class TransitionSelector(CamelModel):
    current: StatusBadge
    options: list[TransitionOption] = Field(default_factory=list)
    disabled: bool = False


class ApprovalAction(CamelModel):
    target_status: ExpenseStatus
    label: str
    notes_required: bool


class ApprovalPanel(CamelModel):
    expense_id: str
    approve: ApprovalAction
    return_to_draft: ApprovalAction


def status_badge(status: ExpenseStatus) -> StatusBadge:
    info = STATUS_TABLE[status]
    return StatusBadge(
        status=status,
        label=info.label,
        icon=info.icon,
        color=info.color,
        description=info.description,
    )


def allowed_transitions(status: ExpenseStatus) -> list[ExpenseStatus]:
    return list(STATUS_TABLE[status].next_states)


def is_allowed(current: ExpenseStatus, target: ExpenseStatus) -> bool:
    return target in STATUS_TABLE[current].next_states


def transition_label(current: ExpenseStatus, target: ExpenseStatus) -> str:
    return TRANSITION_LABELS.get((current, target)) or f"Change to {STATUS_TABLE[target].label}"


def transition_description(target: ExpenseStatus) -> str:
    return _TARGET_DESCRIPTIONS.get(target) or f"Change status to {STATUS_TABLE[target].label}."


def notes_required(target: ExpenseStatus) -> bool:
    return target == ExpenseStatus.DRAFT


def validate_transition(current: ExpenseStatus, target: ExpenseStatus, notes: Optional[str]) -> None:
    """Refuse requests the controls would never have offered."""
    if not is_allowed(current, target):
        raise client_error(
            f"Cannot change status from {STATUS_TABLE[current].label} to {STATUS_TABLE[target].label}",
            details={"targetStatus": "Transition not allowed from the current status"},
        )
    if notes_required(target) and not (notes or "").strip():
        raise client_error(
            "Notes are required when returning an expense to draft",
            details={"notes": "Please provide a reason for returning this expense"},
        )


def build_selector(status: ExpenseStatus) -> TransitionSelector:
    options = [
        TransitionOption(
            target_status=target,
            label=transition_label(status, target),
            description=transition_description(target),
            notes_required=notes_required(target),
        )
        for target in allowed_transitions(status)
    ]
    return TransitionSelector(current=status_badge(status), options=options, disabled=not options)


def _role_value(user: Optional[User]) -> Optional[str]:
    if user is None:
        return None
    return getattr(user.role, "value", user.role)


def can_approve(user: Optional[User], status: ExpenseStatus, privileged_role: str) -> bool:
    return _role_value(user) == privileged_role and status == ExpenseStatus.SUBMITTED


def build_approval_panel(
    user: Optional[User], expense: Expense, privileged_role: str
) -> Optional[ApprovalPanel]:
    if not can_approve(user, expense.status, privileged_role):
        return None
    return ApprovalPanel(
        expense_id=expense.id,
        approve=ApprovalAction(
            target_status=ExpenseStatus.APPROVED,
            label="Approve",
            notes_required=False,
        ),
        return_to_draft=ApprovalAction(
            target_status=ExpenseStatus.DRAFT,
            label="Return to Draft",
            notes_required=True,
        ),
    )
