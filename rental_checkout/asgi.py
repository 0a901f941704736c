"""
ASGI entrypoint: expose `app` pour les process managers / déploiements.
- En production: uvicorn/gunicorn importent `rental_checkout.asgi:app`.
"""

from rental_checkout.app import app

__all__ = ["app"]
