from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    APP_NAME: str = "Ella Rises Importer"
    DEBUG: bool = False

    # Database connection (local defaults)
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_USER: str = "postgres"
    DB_PASSWORD: str = "postgres"
    DB_NAME: str = "ella_rises"
    DB_SSLMODE: Optional[str] = None   # e.g. "require" for RDS
    DATABASE_URL: Optional[str] = None # full override, e.g. "sqlite:///data/dev.db"

    # Import pipeline
    CSV_DIR: str = "data/csv"
    BCRYPT_ROUNDS: int = 10

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        url = URL.create(
            "postgresql+psycopg",
            username=self.DB_USER,
            password=self.DB_PASSWORD,
            host=self.DB_HOST,
            port=self.DB_PORT,
            database=self.DB_NAME,
        )
        return url.render_as_string(hide_password=False)

    @property
    def connect_args(self) -> dict:
        if self.DB_SSLMODE and self.database_url.startswith("postgresql"):
            return {"sslmode": self.DB_SSLMODE}
        return {}

settings = Settings()
