# lms_grading/config.py
from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    ENVIRONMENT: str = "production"  # "development" exposes error details
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str = "sqlite:///./lms_grading.db"
    DB_POOL_SIZE: int = 10
    DB_POOL_TIMEOUT: int = 30  # seconds
    DB_ECHO: bool = False

    # Bearer tokens are issued by the identity provider; we only verify them.
    JWT_SECRET: str = "change-me-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str | None = None
    JWT_ISSUER: str | None = None

    CORS_ORIGINS: list[str] = [
        "http://localhost",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Grading policy
    REQUIRE_GRADE_RULES: bool = False
    DEFAULT_ATTENDANCE_WEIGHT: float = 20
    DEFAULT_ASSIGNMENT_WEIGHT: float = 50
    DEFAULT_EXAM_WEIGHT: float = 30
    DEFAULT_MIN_ATTENDANCE_RATE: float = 0
    ATTENDANCE_FAIL_POLICY: Literal["zero", "weighted"] = "zero"
    PASSING_SCORE: float = 60

    class Config:
        env_file = ".env"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"


settings = Settings()
