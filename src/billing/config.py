from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./billing.db"
    credential_encryption_key: str = ""  # Fernet key; generate with Fernet.generate_key()
    orphan_threshold_minutes: int = 60
    orphan_sweep_interval_minutes: int = 15
    sync_hour: int = 5
    cnb_base_url: str = "https://api.cnb.cz/cnbapi/exrates/daily"
    fio_base_url: str = "https://fioapi.fio.cz/v1/rest"
    http_timeout_seconds: float = 30.0
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
