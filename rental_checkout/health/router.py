from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from rental_checkout.health.service import health_info, health_supabase_info
from rental_checkout.utils.rate_limit import rate_limit_health_info

router = APIRouter(prefix="/health", tags=["Health"])

@router.get("")
def health_root(request: Request):
    return health_info(rate_limit_health_info(request))

@router.get("/supabase")
def health_supabase():
    return JSONResponse(health_supabase_info())
