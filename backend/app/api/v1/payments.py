"""
Router FastAPI per le notifiche del collaboratore di pagamento
Progetto: Billing Engine (Facturation)
"""

from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.invoice import (
    ExternalPaymentNotification,
    PaymentFailureNotification,
    PaymentRead,
)
from app.services.payment_service import PaymentService

router = APIRouter(
    prefix="/payments",
    tags=["Pagamenti"],
)


def get_payment_service() -> PaymentService:
    return PaymentService()


@router.post(
    "/succeeded",
    name="pagamento_riuscito",
    summary="Pagamento riuscito (idempotente sul riferimento del provider)",
    response_model=PaymentRead,
)
async def payment_succeeded(
    data: ExternalPaymentNotification,
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(get_payment_service),
) -> PaymentRead:
    payment = await service.handle_payment_success(db, data)
    return PaymentRead.model_validate(payment)


@router.post(
    "/failed",
    name="pagamento_fallito",
    summary="Pagamento fallito (ignorato se sconosciuto)",
    response_model=Optional[PaymentRead],
)
async def payment_failed(
    data: PaymentFailureNotification,
    response: Response,
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(get_payment_service),
) -> Optional[PaymentRead]:
    payment = await service.handle_payment_failure(db, data.payment_id, data.reason)
    if payment is None:
        response.status_code = status.HTTP_202_ACCEPTED
        return None
    return PaymentRead.model_validate(payment)
