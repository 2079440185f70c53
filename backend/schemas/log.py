from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Any, List, Optional


class LogResponse(BaseModel):
    id: int
    user_id: Optional[int] = None
    user_name: Optional[str] = None
    action: str
    resource: str
    resource_id: Optional[int] = None
    description: Optional[str] = None
    status: str
    ip: Optional[str] = None
    ts: datetime
    old_values: Optional[Any] = None
    new_values: Optional[Any] = None

    model_config = ConfigDict(from_attributes=True)


class LogPage(BaseModel):
    items: List[LogResponse]
    total: int
    page: int
    page_size: int
