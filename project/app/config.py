# app/config.py

from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    AUTH_SECRET_KEY: str
    AUTH_TOKEN_EXPIRE_MINUTES: int = 60
    AUTH_LOGIN: str = "admin@example.com"     # seed admin
    AUTH_PASSWORD: str = "admin"

    DATABASE_URL: str       # sqlite+aiosqlite:///./shop.db, postgresql+asyncpg://...

    LOG_DIR: str = "app/log"
    LOG_PRINT: str = "1"

    # "0" allows any status to follow any other
    ORDER_STRICT_TRANSITIONS: str = "1"

    SHIPPING_API_URL: str = ""
    SHIPPING_API_TOKEN: str = ""
    SHIPPING_CARRIER: str = "shiprocket"
    SHIPPING_TIMEOUT_SECONDS: float = 10.0

    POINTS_PER_CURRENCY_UNIT: int = 10
    REFERRER_REWARD_POINTS: int = 100
    REFERRED_REWARD_DISCOUNT: int = 100
    REFERRAL_COMMISSION_RATE: float = 0.05

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

    @property
    def strict_transitions(self) -> bool:
        return self.ORDER_STRICT_TRANSITIONS.lower() in ("1", "true", "yes")

settings = Settings()
