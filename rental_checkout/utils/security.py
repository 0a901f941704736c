import logging
from fastapi import Request, HTTPException, Depends
from typing import Optional, Dict, Any
from rental_checkout.config import COOKIE_NAME
import rental_checkout.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

def get_token(request: Request) -> Optional[str]:
    # Hybride: priorité au Bearer, fallback cookie
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token:
            return token
    return request.cookies.get(COOKIE_NAME)

def get_user_from_token(access_token: str) -> Dict[str, Any]:
    """
    Résout l'utilisateur via supabase.auth.get_user(access_token).
    - Retourne {id, email, token}; le jeton est relayé aux collaborateurs.
    """
    res = supabase_client.get_supabase().auth.get_user(access_token)
    user = getattr(res, "user", None)
    if user is None:
        return {}
    return {"id": getattr(user, "id", None), "email": getattr(user, "email", None), "token": access_token}

def get_current_user(request: Request) -> Dict[str, Any]:
    token = get_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Non authentifié")

    try:
        user = get_user_from_token(token)
    except Exception:
        logger.exception("security.get_current_user token resolution failed")
        raise HTTPException(status_code=401, detail="Session expirée, veuillez vous connecter")
    if not user.get("id"):
        raise HTTPException(status_code=401, detail="Session expirée, veuillez vous connecter")
    return user

def require_user(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    return user
