from fastapi import Request, Depends
from typing import Optional, Dict, Any

from storefront.auth.service import get_current_user as _svc_get_current_user

COOKIE_NAME = "sb_access"

def extract_token(request: Request) -> Optional[str]:
    # Hybride: priorité au Bearer, fallback cookie
    token = None
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
    if not token:
        token = request.cookies.get(COOKIE_NAME)
    return token or None

def get_current_user(request: Request) -> Dict[str, Any]:
    return _svc_get_current_user(extract_token(request))

def require_user(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    return user
