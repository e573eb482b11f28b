"""
API Routes
Progetto: Billing Engine (Facturation)

Modulo per l'aggregazione dei router versionati.
"""

from app.api.v1 import api_v1_router

__all__ = ["api_v1_router"]
