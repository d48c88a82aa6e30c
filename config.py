from __future__ import annotations
import os
from pathlib import Path


def _csv_env(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [part.strip().lower() for part in raw.split(",") if part.strip()]


class BaseConfig:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    BASE_DIR = Path(__file__).resolve().parent
    # SQLite file in project directory
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", f"sqlite:///{BASE_DIR / 'app.db'}")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # все даты/время в БД: «настенное» время этой зоны
    ONLINE_CLASS_TZ = os.getenv("ONLINE_CLASS_TZ", "Africa/Douala")
    ONLINE_CLASS_WINDOW_MARGIN_MINUTES = int(os.getenv("ONLINE_CLASS_WINDOW_MARGIN_MINUTES", "120"))
    ONLINE_CLASS_WEEKS_AHEAD = int(os.getenv("ONLINE_CLASS_WEEKS_AHEAD", "4"))
    ONLINE_CLASS_TOKEN_MINUTES = int(os.getenv("ONLINE_CLASS_TOKEN_MINUTES", "60"))
    ONLINE_CLASS_REMINDER_LEAD_MINUTES = int(os.getenv("ONLINE_CLASS_REMINDER_LEAD_MINUTES", "15"))

    # служебные аккаунты без ограничений подписки
    ONLINE_CLASS_EXEMPT_DOMAINS = _csv_env(
        "ONLINE_CLASS_EXEMPT_DOMAINS",
        "@educafric.demo,@educafric.test,@test.educafric.com,@demo.educafric.com",
    )
    ONLINE_CLASS_EXEMPT_EMAILS = _csv_env(
        "ONLINE_CLASS_EXEMPT_EMAILS",
        "sandbox@educafric.com,demo@educafric.com,test@educafric.com",
    )
    ONLINE_CLASS_EXEMPT_PREFIXES = _csv_env("ONLINE_CLASS_EXEMPT_PREFIXES", "sandbox,demo,test")
    ONLINE_CLASS_INTERNAL_DOMAIN = os.getenv("ONLINE_CLASS_INTERNAL_DOMAIN", "@educafric")


class DevConfig(BaseConfig):
    DEBUG = True
    SEED_TEST_DATA = True
    DEFAULT_USERS = [
        {"email": "admin@example.com", "password": "pass", "role": "ADMIN"},
        {"email": "director@example.com", "password": "pass", "role": "DIRECTOR",
         # опционально привязать к существующей школе по названию
         "school_name": None},
    ]


class TestConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    AUTH_RL_MAX = 10_000
    SEED_TEST_DATA = False
    DEFAULT_USERS = []


class ProdConfig(BaseConfig):
    DEBUG = False
    JSON_SORT_KEYS = False
    SEED_TEST_DATA = False
    DEFAULT_USERS = []


config_map = {
    "dev": DevConfig,
    "test": TestConfig,
    "prod": ProdConfig,
    "default": DevConfig,
}
