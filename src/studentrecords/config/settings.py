from dataclasses import dataclass
import os
from dotenv import load_dotenv


load_dotenv()


def _split_csv(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    store_path: str = os.getenv("STORE_PATH", "data/student_records.db")
    store_latency_ms: int = _int_env("STORE_LATENCY_MS", 0)

    semester_label: str = os.getenv("SEMESTER_LABEL", "Fall 2024")
    passing_score: int = _int_env("PASSING_SCORE", 75)

    gemini_api_key: str = os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY", "")
    gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
    gemini_endpoint: str = os.getenv(
        "GEMINI_ENDPOINT",
        "https://generativelanguage.googleapis.com/v1beta",
    )

    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

    cors_allowed_origins: tuple[str, ...] = _split_csv(
        os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173")
    )

    web_mode: bool = os.getenv("PORTAL_WEB", "0") == "1"
    port: int = _int_env("PORT", 8550)
    api_port: int = _int_env("API_PORT", 8000)


settings = Settings()
