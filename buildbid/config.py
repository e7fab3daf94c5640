from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "postgresql+asyncpg://buildbid:buildbid_dev@db:5432/buildbid"

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"

    # Security
    SECRET_KEY: str = "dev-secret-key-not-for-production"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    ALLOWED_ORIGINS: str = "*"
    ROLE_LOOKUP_TIMEOUT_SECONDS: float = 5.0

    # Stripe
    STRIPE_SECRET_KEY: str = "mock_stripe_key"
    STRIPE_PUBLISHABLE_KEY: str = "mock_stripe_pub_key"
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300

    # Payment gate
    PAYMENT_GATE_ENABLED: bool = True
    PAYMENT_CURRENCY: str = "usd"
    PROJECT_CREATION_FEE_CENTS: int = 2500
    PROPOSAL_SUBMISSION_FEE_CENTS: int = 1500
    PAYMENT_PROVISIONAL_TTL_MINUTES: int = 30

    # App
    APP_ENV: str = "development"
    APP_URL: str = "http://localhost:8000"
    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
