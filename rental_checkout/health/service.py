from urllib.parse import urlparse
import socket
from rental_checkout.config import SUPABASE_URL, CHECKOUT_SESSIONS_TABLE, API_BASE_URL
import rental_checkout.infra.supabase_client as supabase_client

def _check_table(client, name: str):
    try:
        res = client.table(name).select("session_key").limit(1).execute()
        return {"ok": True, "rows": len(res.data or [])}
    except Exception as e:
        return {"ok": False, "error": str(e)}

def health_supabase_info():
    """
    Diagnostic du stockage des sessions:
    - résolution DNS de l'hôte Supabase
    - accès à la table des sessions de checkout (client service-role)
    """
    parsed = urlparse(SUPABASE_URL) if SUPABASE_URL else None
    hostname = parsed.hostname if parsed else None
    dns_ok = None
    dns_error = None
    if hostname:
        try:
            socket.getaddrinfo(hostname, 443)
            dns_ok = True
        except OSError as e:
            dns_ok = False
            dns_error = str(e)

    info = {
        "supabase_url": SUPABASE_URL,
        "hostname": hostname,
        "dns_ok": dns_ok,
        "dns_error": dns_error,
        "connect_ok": False,
        "error": None,
        "tables": {},
    }
    try:
        client = supabase_client.get_service_supabase()
        info["tables"][CHECKOUT_SESSIONS_TABLE] = _check_table(client, CHECKOUT_SESSIONS_TABLE)
        info["connect_ok"] = True
    except Exception as e:
        info["error"] = str(e)
    return info

def health_info(rate_limit: dict) -> dict:
    return {"ok": True, "collaborators": API_BASE_URL, "rate_limit": rate_limit}
