from typing import Annotated, Any, Literal
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import computed_field, AnyUrl, BeforeValidator


def parse_cors(v: Any) -> list[str] | str:
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",")]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    APP_NAME: str = "ReviewHub"
    API_PREFIX: str = "/api"
    ENVIRONMENT: Literal["development", "test", "production"] = "development"

    # Database
    DATABASE_URL: str

    # Supabase (auth + object storage)
    SUPABASE_URL: str
    SUPABASE_ANON_KEY: str
    SUPABASE_SERVICE_ROLE_KEY: str
    PROOF_BUCKET: str = "review-proofs"
    HTTP_TIMEOUT_SECONDS: float = 15.0

    # Ephemeral scratch store
    TEMP_STORAGE_BACKEND: Literal["memory", "redis"] = "memory"
    TEMP_STORAGE_TTL_SECONDS: int = 24 * 60 * 60
    REDIS_URL: str = "redis://localhost:6379/0"

    # Draft persistence
    COOKIE_SIZE_THRESHOLD: int = 3000
    COOKIE_MAX_BYTES: int = 4096
    DRAFT_COOKIE_DAYS: int = 7
    MANIFEST_COOKIE_DAYS: int = 30
    DRAFT_RETENTION_DAYS: int = 30
    LARGE_OBJECT_RETENTION_DAYS: int = 7

    # Proof uploads
    MAX_PROOF_BYTES: int = 10 * 1024 * 1024
    ALLOWED_PROOF_TYPES: str = "image/jpeg image/jpg image/png image/gif video/mp4 video/quicktime"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def ALLOWED_PROOF_TYPES_LIST(self) -> list[str]:
        """Parse allowed proof MIME types from space-separated string to list."""
        return [t.strip() for t in self.ALLOWED_PROOF_TYPES.split() if t.strip()]

    FRONTEND_HOST: str = "http://localhost:3000"
    BACKEND_CORS_ORIGINS: Annotated[list[AnyUrl] | str, BeforeValidator(parse_cors)] = [
        "http://localhost:8000"
    ]

    @computed_field  # type: ignore[prop-decorator]
    @property
    def ALL_CORS_ORIGINS(self) -> list[str]:
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS] + [
            self.FRONTEND_HOST
        ]

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
