import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    login_redirect_url: str
    csrf_token_max_age: int
    admin_page_size: int


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).")


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///taskboard.db"),
        login_redirect_url=_getenv("LOGIN_REDIRECT_URL", "/todo/"),
        csrf_token_max_age=_getenv_int("CSRF_TOKEN_MAX_AGE", 3600),
        admin_page_size=_getenv_int("ADMIN_PAGE_SIZE", 10),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOGIN_REDIRECT_URL": s.login_redirect_url,
        "CSRF_TOKEN_MAX_AGE": s.csrf_token_max_age,
        "ADMIN_PAGE_SIZE": s.admin_page_size,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        "CSRF_COOKIE_SECURE": is_production,
    }
