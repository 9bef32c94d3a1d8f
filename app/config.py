from pydantic import BaseModel
import os

_EPHEMERAL = os.getenv("VERCEL") == "1"

class Settings(BaseModel):
    runner_mode: str = os.getenv("RUNNER_MODE", "projected" if _EPHEMERAL else "driven")
    store_backend: str = os.getenv("STORE_BACKEND", "memory" if _EPHEMERAL else "file")
    db_path: str = os.getenv("DB_PATH", "db.json")
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    failure_rate: float = float(os.getenv("FAILURE_RATE", 0.2))
    # real milliseconds per nominal time unit of the stage table
    time_scale: float = float(os.getenv("TIME_SCALE", 1.0))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_format: str = os.getenv("LOG_FORMAT", "json")
    cors_allowed_origins: str = os.getenv("CORS_ALLOWED_ORIGINS", "*")

    @property
    def environment(self) -> str:
        return "Vercel" if _EPHEMERAL else "Local"

settings = Settings()
