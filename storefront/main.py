# storefront/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .db import close_pool
from .errors import AppError
from .logging_setup import setup_logging
from .routes import admin, auth, cart, coupons, orders, payments
from .settings import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()
setup_logging(settings)

app = FastAPI(title="Storefront Checkout API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(coupons.router)
app.include_router(cart.router)
app.include_router(orders.router)
app.include_router(admin.router)
app.include_router(auth.router)
app.include_router(payments.router)


@app.exception_handler(AppError)
async def _app_error(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def _request_validation_error(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        # drop the leading "body"/"query"/"header" segment
        loc = [str(p) for p in err.get("loc", ())[1:]]
        errors.append({"field": ".".join(loc) or None, "message": err.get("msg", "invalid value")})
    return JSONResponse(
        status_code=422,
        content={"success": False, "kind": "validation", "message": "Validation failed", "errors": errors},
    )


@app.exception_handler(Exception)
async def _unexpected_error(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"success": False, "kind": "internal", "message": "Internal server error", "errors": []},
    )


@app.get("/")
def root():
    return {"message": "Storefront API is running"}


@app.on_event("shutdown")
async def _shutdown_pool():
    await close_pool()
    logger.info("database pool closed")
