from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "Stock Ledger"
    DATABASE_URL: str = "sqlite:///./stockledger.db"

    # Auth (JWT cookie / bearer token)
    SECRET_KEY: str = "change-me"
    ACCESS_TOKEN_EXPIRE_HOURS: int = 72

    # Seeded on first start when the users table is empty
    DEFAULT_ADMIN_USERNAME: str = "admin"
    DEFAULT_ADMIN_PASSWORD: str = "admin"

    # Compare-and-set attempts per movement before giving up
    MOVEMENT_MAX_RETRIES: int = 5

    # Upper bound on bulk scan size
    BULK_MAX_ITEMS: int = 500

    NEAR_EXPIRY_DAYS: int = 30

    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env"}


settings = Settings()
