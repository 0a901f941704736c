"""
Gestionnaires d'exceptions utilisés par la factory.
- CheckoutError (et sous-classes): JSON {detail, code, item_id?, item_index?, issues?} avec le statut
  propre à chaque erreur (400 validation, 409 refus/occupé, 404 session, 502 collaborateur).
- HTTPException: JSON {detail} standard.
"""
import logging
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from rental_checkout.checkout.errors import CheckoutError

logger = logging.getLogger(__name__)

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CheckoutError)
    async def checkout_error(request: Request, exc: CheckoutError):
        if exc.status_code >= 500:
            logger.warning("checkout error %s on %s: %s", exc.code, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)
