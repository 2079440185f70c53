from typing import Optional

from fastapi import Request


# Caller address for the audit trail, None when the transport gives none
def client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None
