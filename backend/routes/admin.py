# backend/routes/admin.py
from fastapi import APIRouter, Depends, HTTPException, status, Query, Request
from typing import Optional, Literal
from sqlalchemy import func
from sqlalchemy.orm import Session

from database import get_db
from models.users import User
from utils.hashing import get_password_hash
from utils.tokenJWT import require_admin
from utils.request import client_ip
from utils.audit import write_log
from schemas.user import UserCreate, UserPage, UserResponse, UserUpdate

router = APIRouter(prefix="/auth", tags=["Admin"])


# Retrieve the users of the admin's company with filtering, sorting, and pagination
@router.get("/users", response_model=UserPage)
def get_all_users(
    q: Optional[str] = Query(None, description="Search by e-mail"),
    last_name: Optional[str] = Query(None, description="Search by last name"),
    role: Optional[str] = Query(None, description="Filter by role"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    sort_by: Literal["id", "email", "role", "first_name", "last_name"] = "id",
    order: Literal["asc", "desc"] = "asc",
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    query = db.query(User).filter(User.company_id == current_user.company_id)

    # Filter by email
    if q:
        like = f"%{q.lower()}%"
        query = query.filter(User.email.ilike(like))

    # Filter by role
    if role:
        query = query.filter(User.role.ilike(role))

    # Filter by last name
    if last_name:
        query = query.filter(User.last_name.ilike(f"%{last_name}%"))

    # Apply sorting based on selected field and order
    sort_map = {
        "id": User.id,
        "email": User.email,
        "role": User.role,
        "first_name": User.first_name,
        "last_name": User.last_name,
    }
    col = sort_map.get(sort_by, User.id)
    query = query.order_by(col.asc() if order == "asc" else col.desc())

    # Apply pagination
    total = query.count()
    users = query.offset((page - 1) * page_size).limit(page_size).all()

    return {
        "items": users,
        "total": total,
        "page": page,
        "page_size": page_size,
    }


# Add a user to the admin's company
@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    email = payload.email.strip().lower()
    if db.query(User).filter(func.lower(User.email) == email).first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")

    user = User(
        company_id=current_user.company_id,
        email=email,
        password_hash=get_password_hash(payload.password),
        role=payload.role,
        first_name=payload.first_name,
        last_name=payload.last_name,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    write_log(db, company_id=current_user.company_id, user_id=current_user.id, action="USER_CREATE",
              resource="user", resource_id=user.id, description=f"User {user.email} created",
              ip=client_ip(request), new_values={"role": user.role})
    return user


# Update a user of the admin's company
@router.put("/users/{user_id}", response_model=UserResponse)
def update_user(
    user_id: int,
    payload: UserUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    user = db.query(User).filter(User.id == user_id, User.company_id == current_user.company_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    changes = payload.model_dump(exclude_unset=True)

    # Prevent an admin from locking themselves out
    if user.id == current_user.id and (changes.get("is_active") is False or changes.get("role", user.role) != user.role):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot demote or disable your own account")

    old_values = {k: getattr(user, k) for k in changes}
    for key, value in changes.items():
        setattr(user, key, value)
    db.commit()
    db.refresh(user)

    write_log(db, company_id=current_user.company_id, user_id=current_user.id, action="USER_UPDATE",
              resource="user", resource_id=user.id, description=f"User {user.email} updated",
              ip=client_ip(request),
              old_values=old_values, new_values=changes)
    return user
