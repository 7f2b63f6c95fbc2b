import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from coauthor.config import settings
from coauthor.database import create_db_and_tables
from coauthor.routes import (
    admin_payments,
    admin_purchases,
    books_admin,
    books_public,
    coupons,
    coupons_admin,
    health,
    payments,
    purchases,
)
from coauthor.services.errors import StoreError

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Run DB creation ONLY in local
    if settings.ENV == "local":
        create_db_and_tables()
    yield

app = FastAPI(title="Co-Author Bookstore API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        settings.FRONTEND_URL,
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(health.router, prefix="/health", tags=["Health"])
app.include_router(books_public.router, prefix="/books", tags=["Public Books"])
app.include_router(coupons.router, prefix="/coupons", tags=["Coupons"])
app.include_router(purchases.router, prefix="/purchases", tags=["Purchases"])
app.include_router(payments.router, prefix="/payments", tags=["Payments"])
app.include_router(books_admin.router, prefix="/admin/books", tags=["Admin Books"])
app.include_router(coupons_admin.router, prefix="/admin/coupons", tags=["Admin Coupons"])
app.include_router(admin_purchases.router, prefix="/admin/purchases", tags=["Admin Purchases"])
app.include_router(admin_payments.router, prefix="/admin/payments", tags=["Admin Payments"])


@app.get("/")
def root():
    return {
        "public_books": ["/books", "/books/{book_id}"],
        "coupons": ["/coupons/preview"],
        "purchases": [
            "/purchases", "/purchases/me", "/purchases/{purchase_id}",
            "/purchases/{purchase_id}/pay/wallet", "/purchases/{purchase_id}/pay/bank",
        ],
        "payments": ["/payments/status", "/payments/webhook"],
        "admin": [
            "/admin/books", "/admin/coupons", "/admin/purchases",
            "/admin/payments/analytics",
        ],
    }
