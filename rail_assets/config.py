from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = "sqlite:///./rail_assets.db"

    secret_key: str = "dev_secret"
    jwt_algorithm: str = "HS256"
    # tokens live for a working day
    access_token_expire_minutes: int = 1440

    # password handed to users an admin creates; they must change it on first login
    default_user_password: str = "Password10"
    temporary_password_length: int = 8

    # first admin, created by `python -m rail_assets.seed`
    admin_payroll_number: str = "A001"
    admin_password: str = "Password11"

    overdue_after_days: int = 30
    max_page_size: int = 100

    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
