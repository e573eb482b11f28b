"""
API v1 Routes
Progetto: Billing Engine (Facturation)

Router versione 1 dell'API.
"""

from fastapi import APIRouter

from app.api.v1 import amendments, clients, credit_notes, deposits, invoices, payments, quotes

# Router aggregato per v1
api_v1_router = APIRouter(prefix="/api/v1")

# Includi i router dei moduli
api_v1_router.include_router(clients.router)
api_v1_router.include_router(quotes.router)
api_v1_router.include_router(amendments.router)
api_v1_router.include_router(invoices.router)
api_v1_router.include_router(credit_notes.router)
api_v1_router.include_router(deposits.router)
api_v1_router.include_router(payments.router)

# Esportazione
__all__ = ["api_v1_router"]
