# backend/routes/partners.py
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from database import get_db
from models.partner import Client, Supplier
from models.users import User
from utils.audit import write_log
from utils.request import client_ip
from utils.tokenJWT import get_current_user, require_admin
import schemas.partner as partner_schemas


def build_partner_router(model, resource: str, prefix: str) -> APIRouter:
    """CRUD endpoints for one kind of counterparty (suppliers or clients)."""
    router = APIRouter(prefix=prefix, tags=[resource.capitalize() + "s"])
    label = resource.capitalize()

    def _get_or_404(db: Session, company_id: int, partner_id: int):
        partner = (
            db.query(model)
            .filter(model.id == partner_id, model.company_id == company_id, model.is_active.is_(True))
            .first()
        )
        if not partner:
            raise HTTPException(status_code=404, detail=f"{label} not found")
        return partner

    @router.get("/", response_model=partner_schemas.PartnerPage)
    def list_partners(
        q: Optional[str] = Query(None, description="Search by name, e-mail or phone"),
        page: int = Query(1, ge=1),
        page_size: int = Query(20, ge=1, le=500),
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user),
    ):
        query = db.query(model).filter(model.company_id == current_user.company_id, model.is_active.is_(True))
        if q:
            like = f"%{q}%"
            query = query.filter(or_(model.name.ilike(like), model.email.ilike(like), model.phone.ilike(like)))

        total = query.count()
        items = query.order_by(model.name.asc()).offset((page - 1) * page_size).limit(page_size).all()
        return {"items": items, "total": total, "page": page, "page_size": page_size}

    @router.get("/{partner_id}", response_model=partner_schemas.PartnerOut)
    def get_partner(
        partner_id: int,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user),
    ):
        return _get_or_404(db, current_user.company_id, partner_id)

    @router.post("/", response_model=partner_schemas.PartnerOut, status_code=status.HTTP_201_CREATED)
    def create_partner(
        payload: partner_schemas.PartnerCreate,
        request: Request,
        db: Session = Depends(get_db),
        current_user: User = Depends(require_admin),
    ):
        partner = model(company_id=current_user.company_id, **payload.model_dump())
        db.add(partner)
        db.commit()
        db.refresh(partner)

        write_log(db, company_id=current_user.company_id, user_id=current_user.id,
                  action=f"{resource.upper()}_CREATE", resource=resource, resource_id=partner.id,
                  description=f"{label} {partner.name} created",
                  ip=client_ip(request))
        return partner

    @router.patch("/{partner_id}", response_model=partner_schemas.PartnerOut)
    def update_partner(
        partner_id: int,
        payload: partner_schemas.PartnerUpdate,
        request: Request,
        db: Session = Depends(get_db),
        current_user: User = Depends(require_admin),
    ):
        partner = _get_or_404(db, current_user.company_id, partner_id)
        changes = payload.model_dump(exclude_unset=True)
        # name is NOT NULL; an explicit null leaves it unchanged
        if changes.get("name", "") is None:
            del changes["name"]
        old_values = {k: getattr(partner, k) for k in changes}
        for key, value in changes.items():
            setattr(partner, key, value)
        db.commit()
        db.refresh(partner)

        write_log(db, company_id=current_user.company_id, user_id=current_user.id,
                  action=f"{resource.upper()}_UPDATE", resource=resource, resource_id=partner.id,
                  ip=client_ip(request),
                  old_values=old_values, new_values=changes)
        return partner

    @router.delete("/{partner_id}")
    def delete_partner(
        partner_id: int,
        request: Request,
        db: Session = Depends(get_db),
        current_user: User = Depends(require_admin),
    ):
        partner = _get_or_404(db, current_user.company_id, partner_id)
        # Soft delete, past movements keep pointing at it
        partner.is_active = False
        name = partner.name
        db.commit()

        write_log(db, company_id=current_user.company_id, user_id=current_user.id,
                  action=f"{resource.upper()}_DELETE", resource=resource, resource_id=partner_id,
                  description=f"{label} {name} deactivated",
                  ip=client_ip(request))
        return {"message": f"{label} {name} deleted"}

    return router


suppliers_router = build_partner_router(Supplier, "supplier", "/suppliers")
clients_router = build_partner_router(Client, "client", "/clients")
