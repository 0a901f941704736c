"""
Clients Supabase partagés (créés à la première utilisation).
- anon: résolution de l'utilisateur courant (auth.get_user)
- service-role: table des sessions de checkout, écrite au nom du service
"""
from typing import Optional
from supabase import create_client, Client
from rental_checkout.config import CHECKOUT_SESSIONS_TABLE, SUPABASE_URL, SUPABASE_ANON, SUPABASE_SERVICE_KEY

_clients: dict = {}

def _client(kind: str, key: Optional[str]) -> Client:
    if not SUPABASE_URL or not key:
        raise RuntimeError(f"Configuration Supabase incomplète pour le client '{kind}' (SUPABASE_URL / clé)")
    if kind not in _clients:
        _clients[kind] = create_client(SUPABASE_URL, key)
    return _clients[kind]

def get_supabase() -> Client:
    return _client("anon", SUPABASE_ANON)

def get_service_supabase() -> Client:
    return _client("service", SUPABASE_SERVICE_KEY)

def sessions_table():
    """Requête sur la table des sessions de checkout (client service-role)."""
    return get_service_supabase().table(CHECKOUT_SESSIONS_TABLE)
