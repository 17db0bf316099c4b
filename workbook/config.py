from pydantic_settings import BaseSettings, SettingsConfigDict
import os

# Load .env file if it exists, for local development.
# In production, environment variables should be set directly.
if os.path.exists(".env"):
    from dotenv import load_dotenv
    load_dotenv()


class DatabaseSettings(BaseSettings):
    url: str = "sqlite+aiosqlite:///./workbook.db"
    echo: bool = False

    model_config = SettingsConfigDict(env_prefix='DATABASE_')


class JwtSettings(BaseSettings):
    secret: str = "change-me-in-production"
    algorithm: str = "HS256"
    access_ttl_seconds: int = 900  # 15 min
    issuer: str = "workbook-api"
    audience: str = "workbook-client"
    leeway_seconds: int = 30

    model_config = SettingsConfigDict(env_prefix='JWT_')


class GateSettings(BaseSettings):
    elevation_phrase: str = "freelygiven"
    hint_after_attempts: int = 3
    attempt_ttl_seconds: int = 3600

    model_config = SettingsConfigDict(env_prefix='GATE_')


class RedisSettings(BaseSettings):
    url: str = "redis://localhost:6379/0"
    key_prefix: str = "workbook"

    model_config = SettingsConfigDict(env_prefix='REDIS_')


class ProgressStoreSettings(BaseSettings):
    backend: str = "sql"  # "sql" or "memory"

    model_config = SettingsConfigDict(env_prefix='PROGRESS_STORE_')


class AppSettings(BaseSettings):
    title: str = "Recovery Workbook API"
    log_level: str = "INFO"
    cors_origins: str = "*"  # comma separated
    stream_keepalive_seconds: float = 15.0

    model_config = SettingsConfigDict(env_prefix='APP_')

    @property
    def cors_origin_list(self):
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


# Instantiate settings
database_settings = DatabaseSettings()
jwt_settings = JwtSettings()
gate_settings = GateSettings()
redis_settings = RedisSettings()
progress_store_settings = ProgressStoreSettings()
app_settings = AppSettings()
