# backend/routes/company.py
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from database import get_db
from models.company import Company
from models.users import User
from utils.tokenJWT import get_current_user, require_admin
from utils.request import client_ip
from utils.audit import write_log
from schemas.company import CompanyOut, CompanyUpdate

router = APIRouter(prefix="/company", tags=["Company"])

# Company information of the current user, admin-only updates


# Retrieve company details
@router.get("/", response_model=CompanyOut)
def get_company(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return db.query(Company).filter(Company.id == current_user.company_id).first()


# Update company details (Admin only)
@router.patch("/", response_model=CompanyOut)
def update_company(payload: CompanyUpdate, request: Request, db: Session = Depends(get_db), current_user: User = Depends(require_admin)):
    c = db.query(Company).filter(Company.id == current_user.company_id).first()

    # Update fields if provided in the payload
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    old_values = {k: getattr(c, k) for k in changes}
    for key, value in changes.items():
        setattr(c, key, value)

    db.commit()
    db.refresh(c)

    # Log the company update action
    write_log(
        db,
        company_id=c.id,
        user_id=current_user.id,
        action="COMPANY_UPDATE",
        resource="company",
        resource_id=c.id,
        ip=client_ip(request),
        old_values=old_values,
        new_values=changes,
    )

    return c
