# backend/schemas/partner.py
from pydantic import BaseModel, EmailStr, Field, ConfigDict
from datetime import datetime
from typing import List, Optional


# Shared fields of suppliers and clients
class PartnerBase(BaseModel):
    name: str = Field(min_length=1)
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    address: Optional[str] = None


class PartnerCreate(PartnerBase):
    pass


# Schema for partial updates
class PartnerUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    address: Optional[str] = None


class PartnerOut(PartnerBase):
    id: int
    email: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PartnerPage(BaseModel):
    items: List[PartnerOut]
    total: int
    page: int
    page_size: int
