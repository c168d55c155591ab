from pydantic_settings import BaseSettings
from pydantic import field_validator, model_validator
from typing import List


class Settings(BaseSettings):
    # Project Info
    PROJECT_NAME: str = "Marketplace API"
    API_PREFIX: str = "/api"

    # Database
    DATABASE_URL: str
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 3600

    # Security
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Environment
    ENVIRONMENT: str = "development"

    DEBUG: bool = False

    # Monitoring (Optional - Add to .env for production)
    SENTRY_DSN: str = ""

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True

    # Seller order listing
    SELLER_ORDERS_DEFAULT_LIMIT: int = 20
    SELLER_ORDERS_MAX_LIMIT: int = 100

    # Identifier prefixes
    ORDER_ID_PREFIX: str = "ORD"
    ORDER_ITEM_ID_PREFIX: str = "OIT"
    REVIEW_ID_PREFIX: str = "REV"

    @field_validator("ENVIRONMENT")
    @classmethod
    def normalize_environment(cls, value: str) -> str:
        return value.lower().strip()

    @field_validator("ORDER_ID_PREFIX", "ORDER_ITEM_ID_PREFIX", "REVIEW_ID_PREFIX")
    @classmethod
    def validate_id_prefix(cls, value: str) -> str:
        normalized = value.strip().upper()
        if not normalized.isalnum() or len(normalized) > 8:
            raise ValueError("Identifier prefixes must be 1-8 alphanumeric characters")
        return normalized

    @model_validator(mode="after")
    def validate_production_settings(self):
        if self.ENVIRONMENT == "production":
            normalized_secret = (self.SECRET_KEY or "").strip()
            if len(normalized_secret) < 32 or "your-secret-key-here" in normalized_secret.lower():
                raise ValueError("SECRET_KEY must be at least 32 chars and not use placeholders in production")
        if self.SELLER_ORDERS_DEFAULT_LIMIT > self.SELLER_ORDERS_MAX_LIMIT:
            raise ValueError("SELLER_ORDERS_DEFAULT_LIMIT cannot exceed SELLER_ORDERS_MAX_LIMIT")
        return self

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    model_config = {
        "env_file": ".env",
        "case_sensitive": True,
        "extra": "ignore",
    }


settings = Settings()
