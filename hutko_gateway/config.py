import os
from dataclasses import dataclass
from pathlib import Path
from dotenv import load_dotenv

# Force-load .env (Windows-safe, reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

TEST_MERCHANT_ID = "1700002"
TEST_MERCHANT_SECRET_KEY = "test"

DEFAULT_STATUS = "default"
INTEGRATION_TYPES = ("hosted", "embedded")

# Statuses the order store knows about; status overrides must be one of these
# or DEFAULT_STATUS.
ORDER_STATUSES = (
    "created",
    "processing",
    "on-hold",
    "paid",
    "completed",
    "failed",
    "cancelled",
    "refunded",
)


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass
class Settings:
    database_url: str = "sqlite:///./hutko_gateway.db"
    merchant_id: str = ""
    secret_key: str = ""
    test_mode: bool = False
    integration_type: str = "hosted"
    completed_order_status: str = DEFAULT_STATUS
    declined_order_status: str = DEFAULT_STATUS
    expired_order_status: str = DEFAULT_STATUS
    api_url: str = "https://pay.hutko.org/api"
    api_timeout: float = 15.0
    language: str = "uk"
    site_url: str = "http://localhost:8000"
    redirect_url: str = ""
    checkout_token_ttl: int = 86400
    jwt_secret: str = ""
    log_level: str = "INFO"

    def __post_init__(self):
        if self.test_mode:
            self.merchant_id = TEST_MERCHANT_ID
            self.secret_key = TEST_MERCHANT_SECRET_KEY

        if self.integration_type not in INTEGRATION_TYPES:
            raise ValueError(f"Unsupported integration type: {self.integration_type!r}")

        for field_name in ("completed_order_status", "declined_order_status", "expired_order_status"):
            value = getattr(self, field_name)
            if value != DEFAULT_STATUS and value not in ORDER_STATUSES:
                raise ValueError(f"{field_name} must be {DEFAULT_STATUS!r} or one of {ORDER_STATUSES}, got {value!r}")

    @classmethod
    def from_env(cls) -> "Settings":
        database_url = os.getenv("DATABASE_URL", cls.database_url)
        if not database_url:
            raise RuntimeError("DATABASE_URL is not set. Check your .env file.")

        return cls(
            database_url=database_url,
            merchant_id=os.getenv("HUTKO_MERCHANT_ID", ""),
            secret_key=os.getenv("HUTKO_SECRET_KEY", ""),
            test_mode=_flag("HUTKO_TEST_MODE"),
            integration_type=os.getenv("HUTKO_INTEGRATION_TYPE", "hosted"),
            completed_order_status=os.getenv("HUTKO_COMPLETED_ORDER_STATUS", DEFAULT_STATUS),
            declined_order_status=os.getenv("HUTKO_DECLINED_ORDER_STATUS", DEFAULT_STATUS),
            expired_order_status=os.getenv("HUTKO_EXPIRED_ORDER_STATUS", DEFAULT_STATUS),
            api_url=os.getenv("HUTKO_API_URL", cls.api_url),
            api_timeout=float(os.getenv("HUTKO_API_TIMEOUT", "15")),
            language=os.getenv("HUTKO_LANGUAGE", "uk"),
            site_url=os.getenv("SITE_URL", cls.site_url).rstrip("/"),
            redirect_url=os.getenv("HUTKO_REDIRECT_URL", ""),
            checkout_token_ttl=int(os.getenv("CHECKOUT_TOKEN_TTL", "86400")),
            jwt_secret=os.getenv("JWT_SECRET", ""),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
