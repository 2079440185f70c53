from pydantic import BaseModel, EmailStr, Field, ConfigDict
from datetime import datetime
from typing import List, Optional, Literal

UserRole = Literal["admin", "employee"]

# Shared properties for user models
class UserBase(BaseModel):
    email: EmailStr

# Schema for user authentication credentials
class UserLogin(UserBase):
    password: str

# Schema for company signup: the company and its first admin
class RegisterRequest(UserBase):
    password: str = Field(min_length=8)
    first_name: str
    last_name: str
    company_name: str = Field(min_length=1)
    company_email: EmailStr
    company_phone: Optional[str] = None
    company_address: Optional[str] = None

# Schema for an admin adding a user to their company
class UserCreate(UserBase):
    password: str = Field(min_length=8)
    first_name: str
    last_name: str
    role: UserRole = "employee"

# Schema for admin user updates, all fields optional
class UserUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None

# Schema for password changes of the current user
class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(min_length=8)

# Output schema for user profile details
class UserResponse(UserBase):
    id: int
    company_id: int
    role: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_active: bool
    last_login: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

# Schema for paginated user list response
class UserPage(BaseModel):
    items: List[UserResponse]
    total: int
    page: int
    page_size: int

# Schema for JWT authentication token response
class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: Optional[UserResponse] = None
