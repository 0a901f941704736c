"""
Factory d'application pour les entrypoints (ex: rental_checkout.asgi).
Ordonne les étapes d'initialisation de manière lisible et testable.
"""
from fastapi import FastAPI
from .lifespan import lifespan
from .middlewares import register_basic_middlewares, register_no_cache_middleware
from .exceptions import register_exception_handlers
from .routers import register_routers

def create_app() -> FastAPI:
    """
    Construit l'app FastAPI avec le lifespan et enregistre:
      - middlewares de base (CORS, TrustedHost) et no-cache sur l'API checkout
      - gestionnaires d'exceptions (erreurs du checkout, HTTPException)
      - routers (checkout, health)
    """
    app = FastAPI(title="Rental Checkout", lifespan=lifespan)
    register_basic_middlewares(app)
    register_no_cache_middleware(app)
    register_exception_handlers(app)
    register_routers(app)
    return app
