"""
Application configuration.

Every setting is read from the environment once, when `get_config()` is first
called, and handed to collaborators through FastAPI dependencies.
"""
import os
from functools import lru_cache
from typing import List

from pydantic import BaseModel, Field


class AppConfig(BaseModel):
    database_url: str = Field("mongodb://localhost:27017", description="MongoDB connection string")
    database_name: str = Field("store_admin", description="Database holding every collection")
    jwt_secret: str = Field("dev-secret-key-change", description="HS256 signing secret")
    jwt_algorithm: str = "HS256"
    token_expire_days: int = Field(90, ge=1)
    imgbb_api_key: str = Field("", description="Image hosting API key")
    imgbb_upload_url: str = "https://api.imgbb.com/1/upload"
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    port: int = 8000


def load_config() -> AppConfig:
    values = {
        "database_url": os.getenv("DATABASE_URL"),
        "database_name": os.getenv("DATABASE_NAME"),
        "jwt_secret": os.getenv("JWT_SECRET"),
        "token_expire_days": os.getenv("TOKEN_EXPIRE_DAYS"),
        "imgbb_api_key": os.getenv("IMGBB_API_KEY"),
        "imgbb_upload_url": os.getenv("IMGBB_UPLOAD_URL"),
        "log_level": os.getenv("LOG_LEVEL"),
        "port": os.getenv("PORT"),
    }
    origins = os.getenv("CORS_ORIGINS")
    if origins:
        values["cors_origins"] = [o.strip() for o in origins.split(",") if o.strip()]
    return AppConfig(**{k: v for k, v in values.items() if v is not None})


@lru_cache
def get_config() -> AppConfig:
    return load_config()
