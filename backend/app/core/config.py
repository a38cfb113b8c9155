# File: backend/app/core/config.py
# Version: v0.4.0
"""
Centralized application settings using Pydantic Settings.

Controls:
- App metadata and API prefix
- CORS origins
- Directory holding ligation-frequency matrices (<name>.csv) and the default one
- Default RNG seed and per-request limits for the API
"""
from __future__ import annotations

from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # --- App ---
    API_PREFIX: str = "/api"
    APP_NAME: str = "Overhang Fidelity Optimizer"
    APP_VERSION: str = "0.4.0"

    # --- CORS ---
    CORS_ORIGINS: str = "*"  # comma-separated or '*' for all

    # --- Ligation data ---
    MATRIX_DIR: Path = Path("backend/data/matrices")
    DEFAULT_MATRIX: str = "T4_BsaI"

    # --- Limits for synchronous API runs ---
    API_MAX_ITERATIONS: int = 20000
    # calibration_iter x (max calibration steps + 1) x passes x replicas
    API_MAX_CALIBRATION_TRIALS: int = 4_000_000
    API_MAX_BATCH: int = 10000
    DEFAULT_SEED: int | None = None

    LOG_LEVEL: str = "info"

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    @property
    def cors_origins_list(self) -> list[str]:
        raw = self.CORS_ORIGINS.strip()
        if raw == "*":
            return ["*"]
        return [o.strip() for o in raw.split(",") if o.strip()]

    def matrix_path(self, name: str | None = None) -> Path:
        return self.MATRIX_DIR / f"{name or self.DEFAULT_MATRIX}.csv"


settings = Settings()
