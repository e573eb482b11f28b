import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.invoice import DepositRead, InvoicePaymentRequest
from app.services.deposit_service import DepositService

router = APIRouter(prefix="/deposits", tags=["Acconti"])


@router.get("/{deposit_id}", response_model=DepositRead)
async def get_deposit(
    deposit_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    """Recupera il dettaglio di un acconto."""
    return await DepositService.get_by_id(deposit_id, db)


@router.post("/{deposit_id}/pay", response_model=DepositRead)
async def pay_deposit(
    deposit_id: uuid.UUID,
    data: InvoicePaymentRequest,
    db: AsyncSession = Depends(get_db),
):
    """Pagamento dell'acconto registrato manualmente."""
    return await DepositService.mark_paid(deposit_id, db, data.paid_at)


@router.post("/{deposit_id}/cancel", response_model=DepositRead)
async def cancel_deposit(
    deposit_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    return await DepositService.cancel(deposit_id, db)


@router.post("/{deposit_id}/refund", response_model=DepositRead)
async def refund_deposit(
    deposit_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    """Rimborsa un acconto pagato e non ancora dedotto."""
    return await DepositService.refund(deposit_id, db)
