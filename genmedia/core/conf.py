from functools import lru_cache
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from genmedia.core.path_conf import BASE_PATH


class Settings(BaseSettings):
    """Global configuration"""

    model_config = SettingsConfigDict(
        env_file=f'{BASE_PATH}/.env',
        env_file_encoding='utf-8',
        extra='ignore',
        case_sensitive=True,
    )

    # .env environment
    ENVIRONMENT: Literal['dev', 'prod'] = 'dev'

    # FastAPI
    FASTAPI_API_V1_PATH: str = '/api/v1'
    FASTAPI_TITLE: str = 'GenMedia'
    FASTAPI_DESCRIPTION: str = 'Ticket ledger and generation job backend'
    FASTAPI_DOCS_URL: str = '/docs'
    FASTAPI_REDOC_URL: str = '/redoc'
    FASTAPI_OPENAPI_URL: str | None = '/openapi'

    # .env database
    DATABASE_TYPE: Literal['postgresql', 'sqlite'] = 'postgresql'
    DATABASE_HOST: str = '127.0.0.1'
    DATABASE_PORT: int = 5432
    DATABASE_USER: str = 'postgres'
    DATABASE_PASSWORD: str = ''

    # Database
    DATABASE_ECHO: bool | Literal['debug'] = False
    DATABASE_POOL_ECHO: bool | Literal['debug'] = False
    DATABASE_SCHEMA: str = 'genmedia'
    DATABASE_CREATE_TABLES: bool = False  # create missing tables on startup

    # .env identity provider
    IDENTITY_VERIFY_MODE: Literal['remote', 'jwt'] = 'remote'
    IDENTITY_PROVIDER_URL: str = ''
    IDENTITY_SERVICE_KEY: str = ''
    IDENTITY_JWT_SECRET: str = ''

    # Identity
    IDENTITY_ALLOWED_PROVIDER: str = 'google'
    IDENTITY_JWT_ALGORITHM: str = 'HS256'
    IDENTITY_JWT_AUDIENCE: str | None = 'authenticated'
    IDENTITY_TIMEOUT_SECONDS: float = 10.0

    # .env job runner
    RUNPOD_API_KEY: str = ''
    RUNPOD_IMAGE_ENDPOINT_URL: str = 'https://api.runpod.ai/v2/r5iv3ydliscz0m'
    RUNPOD_VIDEO_ENDPOINT_URL: str = ''
    COMFY_ORG_API_KEY: str = ''

    # Job runner
    RUNPOD_TIMEOUT_SECONDS: float = 60.0

    # Tickets
    TICKET_SIGNUP_GRANT: int = 5
    DAILY_BONUS_TICKETS: int = 1
    DAILY_BONUS_COOLDOWN_HOURS: int = 24

    # Polling client
    POLL_MAX_ATTEMPTS: int = 180
    POLL_BASE_DELAY_MS: int = 2000
    POLL_DELAY_STEP_MS: int = 50

    # CORS
    CORS_ALLOWED_ORIGINS: list[str] = [  # no trailing slash
        'http://127.0.0.1:8000',
        'http://localhost:5173',
    ]
    CORS_EXPOSE_HEADERS: list[str] = [
        'X-Request-ID',
    ]

    # Middleware
    MIDDLEWARE_CORS: bool = True

    # Logging
    LOG_FORMAT: str = '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s'
    LOG_STD_LEVEL: str = 'INFO'

    @model_validator(mode='before')
    @classmethod
    def check_env(cls, values: dict) -> dict:
        if values.get('ENVIRONMENT') == 'prod':
            # Disable OpenAPI in production
            values['FASTAPI_OPENAPI_URL'] = None
        return values


@lru_cache
def get_settings() -> Settings:
    """Get the global settings singleton"""
    return Settings()


settings = get_settings()
