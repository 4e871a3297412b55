import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from expense_console.core.auth import require_session
from expense_console.core.errors import ApiError
from expense_console.core.state import AppState, get_app_state
from expense_console.schemas.auth import User
from expense_console.schemas.expense import (
    Expense,
    ExpenseCreate,
    ExpenseQueryParams,
    ExpenseStatus,
    ExpenseUpdate,
    NotesRequest,
    StatusTransitionRequest,
)
from expense_console.services import query_keys
from expense_console.services.read_models import (
    ExpenseDetailView,
    ExpenseListView,
    StatusHistoryView,
    build_detail_view,
    build_history_view,
    build_list_view,
)
from expense_console.services.transition_service import (
    TransitionOutcome,
    load_expense,
    request_transition,
)
from expense_console.services.workflow import can_approve

router = APIRouter()
logger = logging.getLogger(__name__)

# fields the backend addresses by reference rather than by value
_UNPATCHABLE_FIELDS = {"vendor_id"}


def _detail(state: AppState, user: User, expense: Expense) -> ExpenseDetailView:
    return build_detail_view(
        expense,
        user,
        state.settings.privileged_role,
        is_pending=state.cache.has_pending(query_keys.expense_detail(expense.id)),
    )


def _outcome_response(outcome: TransitionOutcome, response: Response) -> TransitionOutcome:
    if not outcome.success:
        response.status_code = outcome.http_status or 400
    return outcome


async def _require_approver(state: AppState, user: User, expense_id: str) -> None:
    expense = await load_expense(state, expense_id)
    if not can_approve(user, expense.status, state.settings.privileged_role):
        raise HTTPException(
            403,
            {
                "code": "FORBIDDEN",
                "message": "Only an accountant can approve or return a submitted expense.",
            },
        )


@router.get("/expenses", response_model=ExpenseListView)
async def list_expenses(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[ExpenseStatus] = None,
    category: Optional[str] = None,
    vendor_id: Optional[str] = Query(None, alias="vendorId"),
    date_from: Optional[date] = Query(None, alias="dateFrom"),
    date_to: Optional[date] = Query(None, alias="dateTo"),
    search: Optional[str] = None,
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query(None, alias="sortOrder", pattern="^(ASC|DESC)$"),
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    params = ExpenseQueryParams(
        page=page,
        limit=limit,
        status=status,
        category=category,
        vendor_id=vendor_id,
        date_from=date_from,
        date_to=date_to,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    with state.loading.track("expenses", "Loading expenses..."):
        expenses = await state.cache.fetch(
            query_keys.expense_list(params.to_backend()),
            lambda: state.backend.list_expenses(params),
        )
    return build_list_view(expenses, params.to_backend())


@router.post("/expenses", response_model=ExpenseDetailView, status_code=201)
async def create_expense(
    payload: ExpenseCreate,
    user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    expense = await state.backend.create_expense(payload)
    state.cache.set(query_keys.expense_detail(expense.id), expense)
    state.cache.invalidate(query_keys.expense_lists())
    state.cache.invalidate(query_keys.dashboard_stats())
    logger.info("Expense created expense_id=%s", expense.id)
    return _detail(state, user, expense)


@router.get("/expenses/{expense_id}", response_model=ExpenseDetailView)
async def get_expense(
    expense_id: str,
    user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    expense = await load_expense(state, expense_id)
    return _detail(state, user, expense)


@router.patch("/expenses/{expense_id}", response_model=ExpenseDetailView)
async def update_expense(
    expense_id: str,
    payload: ExpenseUpdate,
    user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    detail_key = query_keys.expense_detail(expense_id)
    changes = payload.model_dump(exclude_none=True, exclude=_UNPATCHABLE_FIELDS)
    write = state.cache.begin_write([detail_key], lambda expense: expense.model_copy(update=changes))
    try:
        expense = await state.backend.update_expense(expense_id, payload)
    except ApiError:
        state.cache.rollback(write)
        raise
    state.cache.reconcile(write, {detail_key: expense})
    state.cache.invalidate(query_keys.expense_lists())
    return _detail(state, user, expense)


@router.delete("/expenses/{expense_id}", status_code=204)
async def delete_expense(
    expense_id: str,
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    await state.backend.delete_expense(expense_id)
    state.cache.remove(query_keys.expense_detail(expense_id))
    state.cache.invalidate(query_keys.expense_lists())
    state.cache.invalidate(query_keys.dashboard_stats())
    logger.info("Expense deleted expense_id=%s", expense_id)
    return Response(status_code=204)


@router.post("/expenses/{expense_id}/transition", response_model=TransitionOutcome)
async def transition_expense(
    expense_id: str,
    payload: StatusTransitionRequest,
    response: Response,
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    outcome = await request_transition(state, expense_id, payload.target_status, payload.notes)
    return _outcome_response(outcome, response)


@router.post("/expenses/{expense_id}/approve", response_model=TransitionOutcome)
async def approve_expense(
    expense_id: str,
    payload: NotesRequest,
    response: Response,
    user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    await _require_approver(state, user, expense_id)
    outcome = await request_transition(state, expense_id, ExpenseStatus.APPROVED, payload.notes)
    return _outcome_response(outcome, response)


@router.post("/expenses/{expense_id}/return", response_model=TransitionOutcome)
async def return_expense(
    expense_id: str,
    payload: NotesRequest,
    response: Response,
    user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    await _require_approver(state, user, expense_id)
    outcome = await request_transition(state, expense_id, ExpenseStatus.DRAFT, payload.notes)
    return _outcome_response(outcome, response)


@router.get("/expenses/{expense_id}/history", response_model=StatusHistoryView)
async def get_status_history(
    expense_id: str,
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    entries = await state.cache.fetch(
        query_keys.expense_status_history(expense_id),
        lambda: state.backend.get_status_history(expense_id),
    )
    return build_history_view(expense_id, entries)
