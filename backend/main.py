# backend/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from config import settings
from database import init_db
from services.errors import StockError

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# Routers
from routes.auth import router as auth_router
from routes.admin import router as admin_router
from routes.company import router as company_router
from routes.products import router as products_router
from routes.partners import suppliers_router, clients_router
from routes.stock import router as stock_router
from routes.logs import router as logs_router
from routes.stats import router as stats_router
from routes.reports import router as reports_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(title="Stockflow API", version="1.0.0", lifespan=lifespan)

# CORS Configuration
origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]
if settings.FRONTEND_URL and settings.FRONTEND_URL not in origins:
    origins.append(settings.FRONTEND_URL)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Business rule rejections carry a stable code for clients
@app.exception_handler(StockError)
async def stock_error_handler(request: Request, exc: StockError):
    logger.info("%s %s rejected: %s (%s)", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "code": exc.code, "detail": exc.message, **exc.details},
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"success": False, "code": "SERVER_ERROR", "detail": "Internal server error"},
    )


# Router registration
app.include_router(auth_router)
app.include_router(admin_router)
app.include_router(company_router)
app.include_router(products_router)
app.include_router(suppliers_router)
app.include_router(clients_router)
app.include_router(logs_router)
app.include_router(stats_router)
app.include_router(reports_router)
app.include_router(stock_router, prefix="/stock")


@app.get("/")
def read_root():
    return {"message": "Stockflow API is running"}
