"""
Cycle de vie de l'application.
- Démarrage: limiteur de débit (fastapi-limiter sur Redis asynchrone).
- Arrêt: annulation de toutes les interrogations de paiement en cours, puis fermeture de Redis.

Variables d'environnement:
  - DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS=1: pas de limiteur (tests)
  - USE_FAKE_REDIS_FOR_TESTS=1: fakeredis à la place d'un vrai Redis
  - RATE_LIMIT_REDIS_URL: URL Redis (défaut redis://127.0.0.1:6379/0)
  - LOCAL_RATE_LIMIT_FALLBACK=1: limite en mémoire si Redis est indisponible
"""
import os
import logging
import redis.asyncio as aioredis
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi_limiter import FastAPILimiter
from rental_checkout.checkout import service as checkout_service

try:
    from fakeredis.aioredis import FakeRedis  # tests only
except ImportError:
    FakeRedis = None

def _redis_connection():
    if os.getenv("USE_FAKE_REDIS_FOR_TESTS") == "1":
        if FakeRedis is None:
            raise RuntimeError("USE_FAKE_REDIS_FOR_TESTS=1 mais fakeredis n'est pas installé.")
        return FakeRedis(decode_responses=True)
    redis_url = os.getenv("RATE_LIMIT_REDIS_URL", "redis://127.0.0.1:6379/0")
    return aioredis.from_url(redis_url, encoding="utf-8", decode_responses=True)

async def init_rate_limiter(app: FastAPI, logger: logging.Logger) -> bool:
    """Retourne True si fastapi-limiter est initialisé (Redis joignable)."""
    if os.getenv("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS") == "1":
        app.state.rate_limit_enabled = False
        logger.info("Rate limiting disabled by DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS")
        return False
    try:
        await FastAPILimiter.init(_redis_connection())
    except Exception as e:
        fallback = os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1"
        app.state.rate_limit_enabled = fallback
        logger.warning(
            "Rate limiting %s after Redis init error: %s",
            "using local in-memory fallback" if fallback else "disabled", e,
        )
        return False
    app.state.rate_limit_enabled = True
    logger.info("Rate limiting enabled (redis)")
    return True

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("uvicorn.error")
    redis_ready = await init_rate_limiter(app, logger)
    try:
        yield
    finally:
        await checkout_service.shutdown()
        logger.info("Checkout payment pollers stopped")
        if redis_ready:
            await FastAPILimiter.close()
