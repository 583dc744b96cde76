import os
from dataclasses import dataclass
from pathlib import Path
from dotenv import load_dotenv

# Force-load .env (reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH)


@dataclass(frozen=True)
class Settings:
    database_url: str
    stripe_key: str = ""
    stripe_secret: str = ""
    api_url: str = "http://localhost:4001"
    api_timeout: float = 10.0
    stripe_timeout: float = 10.0
    jwt_secret: str = ""
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        database_url = os.getenv("DATABASE_URL")
        if not database_url:
            raise RuntimeError("DATABASE_URL is not set. Check your .env file.")

        return cls(
            database_url=database_url,
            stripe_key=os.getenv("STRIPE_KEY", ""),
            stripe_secret=os.getenv("STRIPE_SECRET", ""),
            api_url=os.getenv("API_URL", "http://localhost:4001").rstrip("/"),
            api_timeout=float(os.getenv("API_TIMEOUT", "10")),
            stripe_timeout=float(os.getenv("STRIPE_TIMEOUT", "10")),
            jwt_secret=os.getenv("INTERNAL_JWT_SECRET", ""),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
