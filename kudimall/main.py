# kudimall/main.py
# Точка входа FastAPI. Создание таблиц выполняется в lifespan с повторными попытками.

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from kudimall.db.session import engine
from kudimall.db.base import Base
from kudimall.core.config import settings
from kudimall.core.errors import MarketplaceError
from kudimall.api import boosts as boosts_router
from kudimall.api import inventory as inventory_router
from kudimall.api import orders as orders_router

# Импорт моделей, чтобы SQLAlchemy видел их определения
import kudimall.models.user
import kudimall.models.product
import kudimall.models.cart
import kudimall.models.order
import kudimall.models.boost

# Настройка логирования
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


def try_create_tables(retries: int = 5, delay: int = 2) -> bool:
    """
    Пытаемся создать таблицы с повторными попытками.
    Если БД недоступна, логируем ошибку и пробуем снова.

    Args:
        retries: Количество попыток подключения
        delay: Задержка между попытками в секундах

    Returns:
        True если таблицы созданы/существуют, False если все попытки исчерпаны
    """
    for attempt in range(1, retries + 1):
        try:
            logger.info(f"Creating tables ({attempt}/{retries})...")
            Base.metadata.create_all(bind=engine)
            logger.info("✅ Database tables created (or already exist).")
            return True
        except Exception as e:
            logger.warning(f"❌ Attempt {attempt}/{retries} failed to create tables: {e}")
            if attempt < retries:
                logger.info(f"⏳ Waiting {delay}s before retry...")
                time.sleep(delay)
    logger.error(f"❌ Could not create tables after {retries} retries.")
    return False


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Старт: таблицы; остановка: закрытие пула соединений."""
    logger.info("🚀 KudiMall core starting up...")
    if not try_create_tables(retries=5, delay=2):
        # В разработке продолжаем, в продакшене без схемы стартовать нельзя
        if settings.ENVIRONMENT in ("production", "prod"):
            raise RuntimeError("Cannot start application: database tables creation failed")

    yield

    logger.info("🛑 KudiMall core shutting down...")
    engine.dispose()
    logger.info("✅ Database connection closed")


app = FastAPI(
    title="KudiMall Core API",
    description="Оформление заказов, учёт остатков и продвижение товаров",
    version="1.0.0",
    lifespan=lifespan
)

if settings.ENVIRONMENT == "development":
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["https://kudimall.com"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["*"],
    )

# Подключаем роутеры
app.include_router(orders_router.router, prefix="/api", tags=["orders"])
app.include_router(inventory_router.router, prefix="/api", tags=["inventory"])
app.include_router(boosts_router.router, prefix="/api", tags=["boosts"])


@app.get("/", tags=["health"])
async def root():
    """Базовый health check."""
    return {
        "status": "ok",
        "service": "KudiMall Core API",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health", tags=["health"])
async def health():
    return {
        "status": "healthy",
        "version": "1.0.0"
    }


@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    """Доменные ошибки: статус берётся из класса ошибки."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"status": "error", "message": exc.message},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Глобальный обработчик ошибок."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "status": "error",
            "message": "Internal server error",
            "detail": str(exc) if settings.ENVIRONMENT == "development" else "An error occurred",
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "kudimall.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENVIRONMENT == "development",
        log_level=settings.LOG_LEVEL.lower()
    )
