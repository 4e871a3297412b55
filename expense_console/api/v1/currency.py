from typing import Optional

from fastapi import APIRouter, Depends, Query

from expense_console.core.auth import require_session
from expense_console.core.state import AppState, get_app_state
from expense_console.schemas.auth import User
from expense_console.schemas.report import ConvertRequest, ConvertResult, ExchangeRate

router = APIRouter()


@router.get("/currency/exchange-rate", response_model=ExchangeRate)
async def get_exchange_rate(
    from_currency: str = Query(..., alias="from", min_length=3, max_length=3),
    to_currency: str = Query(..., alias="to", min_length=3, max_length=3),
    on_date: Optional[str] = Query(None, alias="date"),
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    return await state.backend.get_exchange_rate(from_currency.upper(), to_currency.upper(), on_date)


@router.post("/currency/convert", response_model=ConvertResult)
async def convert_currency(
    payload: ConvertRequest,
    _user: User = Depends(require_session),
    state: AppState = Depends(get_app_state),
):
    return await state.backend.convert_currency(payload)
