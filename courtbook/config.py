from functools import lru_cache
import os
from pydantic import BaseModel, Field


class Settings(BaseModel):
    env: str = Field(default="dev", alias="ENV")

    database_url: str = Field(default="", alias="DATABASE_URL")
    postgres_db: str = Field(default="courtbook", alias="POSTGRES_DB")
    postgres_user: str = Field(default="courtbook", alias="POSTGRES_USER")
    postgres_password: str = Field(default="courtbook", alias="POSTGRES_PASSWORD")
    postgres_host: str = Field(default="localhost", alias="POSTGRES_HOST")
    postgres_port: int = Field(default=5432, alias="POSTGRES_PORT")

    jwt_secret: str = Field(default="secret", alias="JWT_SECRET")

    default_timezone: str = Field(default="America/Santiago", alias="DEFAULT_TIMEZONE")
    default_currency: str = Field(default="CLP", alias="DEFAULT_CURRENCY")

    frontend_url: str = Field(default="http://localhost:3000", alias="FRONTEND_URL")
    mail_api_url: str = Field(default="", alias="MAIL_API_URL")
    mail_api_key: str = Field(default="", alias="MAIL_API_KEY")
    mail_from: str = Field(default="noreply@courtbook.local", alias="MAIL_FROM")

    survey_sweep_minutes: int = Field(default=15, alias="SURVEY_SWEEP_MINUTES")
    survey_delay_hours: int = Field(default=1, alias="SURVEY_DELAY_HOURS")
    survey_window_hours: int = Field(default=24, alias="SURVEY_WINDOW_HOURS")

    class Config:
        populate_by_name = True

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+psycopg2://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings(**os.environ)
