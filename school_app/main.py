from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from school_app.core.config import settings
from school_app.core.logger import logger
from contextlib import asynccontextmanager
from school_app.core.database import engine, Base
from school_app.api.v1.api import api_router
from school_app import models  # noqa: F401  registers the tables on Base.metadata


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.PROJECT_NAME} in {settings.ENVIRONMENT} environment")
    logger.debug(f"Database URL: {settings.DATABASE_URL}")
    logger.debug(f"Secret Key: {'*' * len(settings.SECRET_KEY)} (hidden)")

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.success("Database initialized")
    except Exception as e:
        logger.critical(f"Database initialization failed: {e}")
        raise

    yield

    logger.info(f"Shutting down {settings.PROJECT_NAME}")
    await engine.dispose()
    logger.debug("Database engine disposed")

app = FastAPI(title=settings.PROJECT_NAME, version="1.0.0", lifespan=lifespan)

origins = [
    "http://localhost",
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:8000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix=settings.API_V1_STR)
