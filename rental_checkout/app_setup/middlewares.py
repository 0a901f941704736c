"""
Middlewares transverses de l'application.
- register_basic_middlewares: CORS (jeton Bearer ou cookie de session) et hôtes autorisés.
- register_no_cache_middleware: les réponses du checkout ne sont jamais mises en cache.
"""
from typing import List
from fastapi import Request, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware
from rental_checkout.config import CORS_ORIGINS, ALLOWED_HOSTS
from rental_checkout.checkout.views import router as checkout_router

API_METHODS = ["GET", "POST", "PATCH", "DELETE", "OPTIONS"]
NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}

def _trusted_hosts() -> List[str]:
    # CORS ouvert en dev: on n'impose pas non plus la liste des hôtes
    if "*" in CORS_ORIGINS:
        return ALLOWED_HOSTS + ["*"]
    return ALLOWED_HOSTS

def register_basic_middlewares(app: FastAPI) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=API_METHODS,
        allow_headers=["Authorization", "Content-Type"],
    )
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=_trusted_hosts())

def register_no_cache_middleware(app: FastAPI) -> None:
    """
    L'étape et le statut de paiement évoluent sans action du client (interrogation en tâche de fond):
    une réponse mise en cache afficherait un état périmé.
    """
    prefix = checkout_router.prefix

    @app.middleware("http")
    async def no_cache_for_checkout(request: Request, call_next):
        response = await call_next(request)
        if request.url.path.startswith(prefix):
            response.headers.update(NO_STORE_HEADERS)
        return response
