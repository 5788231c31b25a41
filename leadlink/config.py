from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "postgresql+asyncpg://leadlink:leadlink_dev@db:5432/leadlink"

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"

    # Security
    SECRET_KEY: str = "dev-secret-key-not-for-production"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    ALLOWED_ORIGINS: str = "*"

    # Razorpay
    RAZORPAY_KEY_ID: str = "mock_razorpay_key"
    RAZORPAY_KEY_SECRET: str = "mock_razorpay_secret"

    # Leads
    LEAD_ACCEPTANCE_FEE: int = 9
    LEAD_ACCEPTANCE_CURRENCY: str = "INR"
    ENQUIRY_TTL_DAYS: int = 7
    PAYMENT_HOLD_TIMEOUT_MINUTES: int = 30

    # App
    APP_ENV: str = "development"
    APP_URL: str = "http://localhost:8000"
    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
