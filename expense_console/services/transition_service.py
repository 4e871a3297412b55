import logging
from typing import TYPE_CHECKING, Any, Optional

from pydantic import Field

from expense_console.core.errors import ApiError, display_message, http_status_for
from expense_console.schemas.common import CamelModel
from expense_console.schemas.expense import Expense, ExpenseList, ExpenseStatus
from expense_console.services import query_keys
from expense_console.services.workflow import validate_transition

if TYPE_CHECKING:
    from expense_console.core.state import AppState

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = "Failed to update expense status"


class TransitionOutcome(CamelModel):
    success: bool
    expense_id: str
    requested_status: ExpenseStatus
    status: ExpenseStatus
    expense: Optional[Expense] = None
    message: Optional[str] = None
    code: Optional[str] = None
    details: dict[str, str] = Field(default_factory=dict)
    http_status: Optional[int] = Field(default=None, exclude=True)


def _with_status(value: Any, expense_id: str, status: ExpenseStatus) -> Any:
    if isinstance(value, Expense):
        return value.model_copy(update={"status": status}) if value.id == expense_id else value
    if isinstance(value, ExpenseList):
        data = [
            item.model_copy(update={"status": status}) if item.id == expense_id else item
            for item in value.data
        ]
        return value.model_copy(update={"data": data})
    return value


async def load_expense(state: "AppState", expense_id: str, *, force: bool = False) -> Expense:
    return await state.cache.fetch(
        query_keys.expense_detail(expense_id),
        lambda: state.backend.get_expense(expense_id),
        force=force,
    )


async def request_transition(
    state: "AppState",
    expense_id: str,
    target: ExpenseStatus,
    notes: Optional[str] = None,
) -> TransitionOutcome:
    """Ask the backend to move an expense to ``target``.

    The requested status is shown optimistically while the call is in flight.
    On success the backend's expense replaces it; on failure the overlay is
    dropped and the error message is returned for display.
    """
    current = await load_expense(state, expense_id)
    notes = (notes or "").strip() or None

    try:
        validate_transition(current.status, target, notes)
    except ApiError as exc:
        return TransitionOutcome(
            success=False,
            expense_id=expense_id,
            requested_status=target,
            status=current.status,
            expense=current,
            message=display_message(exc, FALLBACK_MESSAGE),
            code=exc.code,
            details=exc.details,
            http_status=http_status_for(exc),
        )

    detail_key = query_keys.expense_detail(expense_id)
    keys = [detail_key, *state.cache.keys(query_keys.expense_lists())]
    write = state.cache.begin_write(keys, lambda value: _with_status(value, expense_id, target))

    try:
        with state.loading.track("expense-status", "Updating expense status..."):
            confirmed = await state.backend.update_expense_status(expense_id, target, notes)
            if confirmed is None:
                confirmed = await state.backend.get_expense(expense_id)
    except ApiError as exc:
        state.cache.rollback(write)
        logger.warning(
            "Status change rejected expense_id=%s %s->%s code=%s",
            expense_id,
            current.status.value,
            target.value,
            exc.code,
        )
        shown = state.cache.get(detail_key) or current
        return TransitionOutcome(
            success=False,
            expense_id=expense_id,
            requested_status=target,
            status=shown.status,
            expense=shown,
            message=display_message(exc, FALLBACK_MESSAGE),
            code=exc.code,
            details=exc.details,
            http_status=http_status_for(exc),
        )

    state.cache.reconcile(write, {detail_key: confirmed})
    state.cache.invalidate(query_keys.expense_status_history(expense_id))
    state.cache.invalidate(query_keys.expense_lists())
    state.cache.invalidate(query_keys.dashboard_stats())

    if confirmed.status != target:
        logger.info(
            "Backend confirmed status %s for expense_id=%s (requested %s)",
            confirmed.status.value,
            expense_id,
            target.value,
        )
    return TransitionOutcome(
        success=True,
        expense_id=expense_id,
        requested_status=target,
        status=confirmed.status,
        expense=confirmed,
    )
