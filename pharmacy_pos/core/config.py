# pharmacy_pos/core/config.py
import os
from typing import List, Optional
from pydantic import BaseModel
from dotenv import load_dotenv
from urllib.parse import quote_plus

load_dotenv()


def _split_csv(value: str) -> List[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


class Settings(BaseModel):
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "PharmaCare POS")
    API_V1_STR: str = os.getenv("API_V1_STR", "/api")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    BACKEND_CORS_ORIGINS: List[str] = _split_csv(
        os.getenv(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ))

    # ---------- Database ----------
    MYSQL_HOST: str = os.getenv("MYSQL_HOST", "localhost")
    MYSQL_PORT: int = int(os.getenv("MYSQL_PORT", "3306"))
    MYSQL_USER: str = os.getenv("MYSQL_USER", "pharmacare")
    MYSQL_PASSWORD: str = os.getenv("MYSQL_PASSWORD", "pharmacare")
    MYSQL_DB: str = os.getenv("MYSQL_DB", "pharmacare_pos")
    DB_DRIVER: str = os.getenv("DB_DRIVER", "pymysql")

    # Full URL wins over the MySQL parts (handy for sqlite/postgres)
    DATABASE_URL: Optional[str] = os.getenv("DATABASE_URL") or None

    # ---------- Security ----------
    JWT_SECRET: str = os.getenv("JWT_SECRET", "change-this")
    JWT_ALG: str = os.getenv("JWT_ALG", "HS256")

    # ---------- Sale engine ----------
    CURRENCY: str = os.getenv("CURRENCY", "KSh")
    IDEMPOTENCY_TTL_SECONDS: int = int(
        os.getenv("IDEMPOTENCY_TTL_SECONDS", "60"))
    IDEMPOTENCY_BACKEND: str = os.getenv("IDEMPOTENCY_BACKEND", "database")

    # clamp (false) or reject (true) credit payments above the balance
    CREDIT_REJECT_OVERPAYMENT: bool = _flag("CREDIT_REJECT_OVERPAYMENT",
                                            "false")
    # voiding a credit sale that already has payments discards them
    VOID_ALLOW_PAID_CREDIT: bool = _flag("VOID_ALLOW_PAID_CREDIT", "true")

    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"mysql+{self.DB_DRIVER}://{quote_plus(self.MYSQL_USER)}:{quote_plus(self.MYSQL_PASSWORD)}"
            f"@{self.MYSQL_HOST}:{self.MYSQL_PORT}/{self.MYSQL_DB}?charset=utf8mb4"
        )


settings = Settings()
