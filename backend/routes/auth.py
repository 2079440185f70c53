# backend/routes/auth.py
import logging

from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy import func
from sqlalchemy.orm import Session

from utils.hashing import get_password_hash, verify_password
from utils.tokenJWT import token_for_user, get_current_user
from utils.request import client_ip
from utils.audit import write_log
from utils.dates import utc_now
from models import users as models
from models.company import Company
from schemas import user as schemas
from database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


# Register a new company together with its admin user
@router.post("/register", response_model=schemas.Token, status_code=status.HTTP_201_CREATED)
def register(payload: schemas.RegisterRequest, request: Request, db: Session = Depends(get_db)):
    # Normalize email input
    normalized_email = payload.email.strip().lower()
    company_email = payload.company_email.strip().lower()

    # Check for existing user or company
    if db.query(models.User).filter(func.lower(models.User.email) == normalized_email).first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")
    if db.query(Company).filter(func.lower(Company.email) == company_email).first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Company email already registered")

    company = Company(
        name=payload.company_name.strip(),
        email=company_email,
        phone=payload.company_phone,
        address=payload.company_address,
    )
    db.add(company)
    db.flush()

    # Create the admin with a hashed password
    admin = models.User(
        company_id=company.id,
        email=normalized_email,
        password_hash=get_password_hash(payload.password),
        role=models.ROLE_ADMIN,
        first_name=payload.first_name,
        last_name=payload.last_name,
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)
    logger.info("Company %s registered with admin %s", company.id, admin.email)

    write_log(
        db,
        company_id=admin.company_id,
        user_id=admin.id,
        action="REGISTER",
        resource="company",
        resource_id=admin.company_id,
        description=f"Company {company.name} created",
        ip=client_ip(request),
    )
    return {"access_token": token_for_user(admin), "token_type": "bearer", "user": admin}


# Authenticate user and issue JWT token
@router.post("/login", response_model=schemas.Token)
def login(payload: schemas.UserLogin, request: Request, db: Session = Depends(get_db)):
    db_user = db.query(models.User).filter(func.lower(models.User.email) == payload.email.lower()).first()

    # Validate credentials and log failure on error
    if not db_user or not verify_password(payload.password, db_user.password_hash):
        if db_user:
            write_log(db, company_id=db_user.company_id, user_id=db_user.id, action="LOGIN", resource="auth",
                      status="FAIL", ip=client_ip(request))
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    if not db_user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Account disabled")
    if not db_user.company or not db_user.company.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Company account disabled")

    db_user.last_login = utc_now()
    db.commit()
    db.refresh(db_user)

    # Log successful login event
    write_log(db, company_id=db_user.company_id, user_id=db_user.id, action="LOGIN", resource="auth",
              ip=client_ip(request))

    return {"access_token": token_for_user(db_user), "token_type": "bearer", "user": db_user}


# Retrieve current authenticated user details
@router.get("/me", response_model=schemas.UserResponse)
def me(current_user: models.User = Depends(get_current_user)):
    return current_user


# Change the password of the current user
@router.put("/change-password")
def change_password(
    payload: schemas.PasswordChange,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    if not verify_password(payload.current_password, current_user.password_hash):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Current password is incorrect")

    current_user.password_hash = get_password_hash(payload.new_password)
    db.commit()

    write_log(db, company_id=current_user.company_id, user_id=current_user.id, action="PASSWORD_CHANGE",
              resource="user", resource_id=current_user.id, ip=client_ip(request))
    return {"message": "Password changed"}
