"""
Schemas Pydantic per l'anagrafica clienti
Progetto: Billing Engine (Facturation)
"""

import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class ClientCreate(BaseModel):
    """Schema per la creazione di un cliente."""

    name: str = Field(..., min_length=1, max_length=100)
    surname: Optional[str] = Field(None, max_length=100)
    client_type: str = Field("private", pattern="^(private|company)$")
    siret: Optional[str] = None
    vat_number: Optional[str] = None
    address: Optional[str] = Field(None, max_length=255)
    zip_code: Optional[str] = Field(None, max_length=10)
    city: Optional[str] = Field(None, max_length=100)
    country: str = Field("FR", min_length=2, max_length=2)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=20)
    notes: Optional[str] = None

    @field_validator("siret")
    @classmethod
    def validate_siret(cls, v: Optional[str]) -> Optional[str]:
        """Il SIRET è composto da 14 cifre."""
        if v is None:
            return v
        v = v.replace(" ", "")
        if len(v) != 14 or not v.isdigit():
            raise ValueError("Il SIRET deve contenere 14 cifre")
        return v


class ClientRead(BaseModel):
    id: uuid.UUID
    name: str
    surname: Optional[str] = None
    client_type: str
    siret: Optional[str] = None
    vat_number: Optional[str] = None
    address: Optional[str] = None
    zip_code: Optional[str] = None
    city: Optional[str] = None
    country: str
    email: Optional[str] = None
    phone: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ClientUpdate(BaseModel):
    """Aggiornamento parziale dell'anagrafica (non tocca i documenti emessi)."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    surname: Optional[str] = Field(None, max_length=100)
    address: Optional[str] = Field(None, max_length=255)
    zip_code: Optional[str] = Field(None, max_length=10)
    city: Optional[str] = Field(None, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=20)
    notes: Optional[str] = None


class ClientList(BaseModel):
    """Risposta paginata."""

    items: list[ClientRead] = Field(default_factory=list)
    total: int
    page: int
    per_page: int
