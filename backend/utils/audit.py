import logging
from typing import Any, Optional

from sqlalchemy.orm import Session
from models.log import Log

logger = logging.getLogger(__name__)


def write_log(
    db: Session,
    *,
    company_id: int,
    user_id: Optional[int],
    action: str,
    resource: str,
    resource_id: Optional[int] = None,
    description: Optional[str] = None,
    status: str = "SUCCESS",
    ip: Optional[str] = None,
    old_values: Optional[dict] = None,
    new_values: Optional[dict] = None,
) -> Optional[Log]:
    """
    Append an entry to the audit trail and commit it.

    Must be called after the business transaction has been committed. A
    failure here is logged and swallowed so the caller's operation still
    succeeds; the session is rolled back to stay usable.
    """
    try:
        entry = Log(
            company_id=company_id,
            user_id=user_id,
            action=action,
            resource=resource,
            resource_id=resource_id,
            description=description,
            status=status,
            ip=ip,
            old_values=_jsonable(old_values),
            new_values=_jsonable(new_values),
        )
        db.add(entry)
        db.commit()
        return entry
    except Exception:
        db.rollback()
        logger.exception("Audit log write failed: action=%s resource=%s id=%s", action, resource, resource_id)
        return None


def _jsonable(values: Optional[dict]) -> Optional[dict]:
    if values is None:
        return None
    return {k: _scalar(v) for k, v in values.items()}


def _scalar(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    # Decimal, datetime, enums
    return str(getattr(value, "value", value))
