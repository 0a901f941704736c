"""
Registre central des routers.
- API v1: checkout
- Health: health_router
"""
from fastapi import FastAPI
from rental_checkout.checkout.views import router as checkout_router
from rental_checkout.health.router import router as health_router

def register_routers(app: FastAPI) -> None:
    app.include_router(checkout_router)
    app.include_router(health_router)
