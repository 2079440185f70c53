from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Optional


# Schema for displaying company details
class CompanyOut(BaseModel):
    id: int
    name: str
    nip: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    email: str
    is_active: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# Schema for updating company information
class CompanyUpdate(BaseModel):
    name: Optional[str] = None
    nip: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
