from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    project_name: str = "Friends API"

    # Either a SQLAlchemy URL or a plain path to a SQLite file.
    database_url: str

    pool_size: int = 5
    pool_acquire_timeout: float = 30.0
    query_timeout: float = 5.0

    host: str = "0.0.0.0"
    port: int = 3030
    # Resolved against the working directory, like any relative path.
    assets_dir: Path = Path("assets")

    log_level: str = "INFO"

    class Config:
        env_file = ".env"

    @property
    def sqlalchemy_url(self) -> str:
        if "://" in self.database_url:
            return self.database_url
        return f"sqlite:///{self.database_url}"

    @property
    def is_sqlite(self) -> bool:
        return self.sqlalchemy_url.startswith("sqlite")


@lru_cache
def get_settings() -> Settings:
    return Settings()
