# Larder API Main Entry Point
import logging
import sys
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from .errors import LarderError
from .settings import settings
from .routers.ready import router as ready_router
from .routers.users import router as users_router
from .routers.ingredients import router as ingredients_router
from .routers.recipes import router as recipes_router
from .routers.stock import router as stock_router
from .routers.plan import router as plan_router
from .routers.shopping import router as shopping_router
from .routers.units import router as units_router
from .routers.notifications import router as notifications_router

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger("larder")

# Rate limiter (per-IP)
limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])

app = FastAPI(title="Larder API", version="0.1.0")
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(LarderError)
async def larder_error_handler(request: Request, exc: LarderError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message} {exc.context}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ready_router, prefix="/api", tags=["ready"])
app.include_router(users_router, prefix="/api", tags=["users"])
app.include_router(ingredients_router, prefix="/api/ingredients", tags=["ingredients"])
app.include_router(recipes_router, prefix="/api", tags=["recipes"])
app.include_router(stock_router, prefix="/api/stock", tags=["stock"])
app.include_router(plan_router, prefix="/api", tags=["plan"])
app.include_router(shopping_router, prefix="/api/shopping-list", tags=["shopping"])
app.include_router(units_router, prefix="/api/units", tags=["units"])
app.include_router(notifications_router, prefix="/api/notifications", tags=["notifications"])
