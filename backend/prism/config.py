import json
import os
import re
from pathlib import Path
from typing import Annotated, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    app_name: str = Field(default="Prism Deal Desk API", validation_alias="PROJECT_NAME")
    environment: str = Field(default="dev")
    build_version: Optional[str] = Field(default=None)
    database_url: str = Field(default="sqlite+pysqlite:///./prism-dev.db")
    # API prefix used by FastAPI router include. Configured via API_V1_STR (e.g. "/api").
    api_prefix: str = Field(default="", validation_alias="API_V1_STR")
    enable_docs: Optional[bool] = Field(default=None, validate_default=True)
    cors_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=list, validate_default=True
    )
    storage_dir: str = Field(default="storage")
    run_migrations_on_start: bool = Field(default=False)

    # Upstream Prism REST backend that owns persisted deals.
    prism_api_url: str = Field(default="http://localhost:3001")
    prism_api_timeout_seconds: float = Field(default=10.0)

    max_attachment_mb: int = Field(default=10)

    @field_validator("enable_docs", mode="after")
    @classmethod
    def default_enable_docs(cls, value, info):
        if value is None:
            env = str(info.data.get("environment", "dev") or "dev").lower()
            return env in {"dev", "development", "test"}
        return bool(value)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_and_default_cors_origins(cls, value, info):
        env = str(info.data.get("environment", "dev") or "dev").lower()

        def _normalize_origin(o: str) -> str:
            s = str(o).strip().strip('"').strip("'")
            # Browsers send the Origin header without a trailing slash.
            if s.endswith("/"):
                s = s[:-1]
            return s

        if value is None or value == "" or value == []:
            if env in {"prod", "production"}:
                raise ValueError("CORS_ORIGINS must be explicitly set in production")
            return [
                "http://localhost:3000",
                "http://127.0.0.1:3000",
            ]

        if isinstance(value, str):
            s = value.strip()
            if (s.startswith('"') and s.endswith('"')) or (s.startswith("'") and s.endswith("'")):
                s = s[1:-1].strip()

            try:
                parsed = json.loads(s)
                if isinstance(parsed, str):
                    return [_normalize_origin(parsed)]
                if isinstance(parsed, list):
                    return [_normalize_origin(v) for v in parsed if str(v).strip()]
                return [_normalize_origin(str(parsed))]
            except json.JSONDecodeError:
                pass

            # Python-ish list strings: ['http://...','http://...']
            if s.startswith("[") and s.endswith("]") and ("'") in s and ('"' not in s):
                try:
                    parsed = json.loads(s.replace("'", '"'))
                    if isinstance(parsed, list):
                        return [_normalize_origin(v) for v in parsed if str(v).strip()]
                except json.JSONDecodeError:
                    pass

            return [_normalize_origin(v) for v in s.split(",") if str(v).strip()]

        return value

    @field_validator("api_prefix", mode="before")
    @classmethod
    def normalize_api_prefix(cls, v: str) -> str:
        """
        Normalize API prefix coming from env/.env.

        On Windows Git Bash (MSYS), values like "/api" may appear as a Windows path
        (e.g. "C:/Program Files/Git/api"). When that happens, extract the trailing
        "/api..." portion so routing keeps working.
        """
        if v is None:
            return ""
        s = str(v).strip()
        if not s:
            return ""

        if s.startswith("/api/") or s == "/api":
            return s

        m = re.search(r"(/api(?:/[^\s]*)?)$", s.replace("\\", "/"))
        if m:
            return m.group(1)

        if s == "api" or s.startswith("api/"):
            return f"/{s}"

        return s

    @field_validator("database_url", mode="before")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Make SQLite relative paths stable across working directories.

        Relative sqlite URLs such as ``sqlite+pysqlite:///./prism-dev.db`` are
        rooted at the backend folder, so running uvicorn from elsewhere does not
        silently create a second empty database.
        """

        if v is None:
            return "sqlite+pysqlite:///./prism-dev.db"

        s = str(v).strip()
        if not s:
            return s

        if s.startswith("postgres://"):
            s = "postgresql://" + s[len("postgres://") :]
        if s.startswith("postgresql://"):
            return "postgresql+psycopg://" + s[len("postgresql://") :]
        if s.startswith("postgresql+psycopg2://"):
            return "postgresql+psycopg://" + s[len("postgresql+psycopg2://") :]

        if not s.startswith("sqlite"):
            return s

        marker = ":///"
        i = s.find(marker)
        if i == -1:
            return s

        path_part = s[i + len(marker) :]

        if path_part.startswith("/") or re.match(r"^[A-Za-z]:/", path_part):
            return s

        if path_part.startswith("./") or path_part.startswith(".\\"):
            backend_root = Path(__file__).resolve().parents[1]
            abs_path = (backend_root / path_part[2:]).resolve().as_posix()
            return f"{s[: i + len(marker)]}{abs_path}"

        return s

    @field_validator("database_url", mode="after")
    @classmethod
    def validate_database_url_for_environment(cls, v: str, info):
        env = str(info.data.get("environment", "dev") or "dev").strip().lower()
        raw = os.getenv("DATABASE_URL")
        s = str(v or "").strip()

        if env in {"prod", "production"}:
            if not raw:
                raise ValueError("DATABASE_URL must be explicitly set in production")
            if s.startswith("sqlite"):
                raise ValueError("SQLite DATABASE_URL is not allowed in production")
            if "localhost" in s or "127.0.0.1" in s:
                raise ValueError("DATABASE_URL must not point to localhost in production")

        return s

    @field_validator("prism_api_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return str(v or "").strip().rstrip("/")

    @field_validator("max_attachment_mb", mode="after")
    @classmethod
    def validate_max_attachment_mb(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("MAX_ATTACHMENT_MB must be positive")
        return v


settings = Settings()
