from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class PointsLimits(BaseModel):
    min: int = 1
    max: int = 1000


class LengthLimit(BaseModel):
    max_length: int


class Limits(BaseModel):
    points: PointsLimits = PointsLimits()
    name: LengthLimit = LengthLimit(max_length=50)
    note: LengthLimit = LengthLimit(max_length=200)


class Settings(BaseSettings):
    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8098
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///tavoli.db"
    DATABASE_ECHO: bool = False
    DATABASE_BUSY_TIMEOUT: float = 30.0

    # Auth
    AUTH_JWT_SECRET: str = "tavoli-dev-secret"
    AUTH_JWT_ALGORITHM: str = "HS256"
    AUTH_TOKEN_HEADERS: str = "authorization,x-auth-token"
    AUTH_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # Tavoli / punti
    QR_TOKEN_PREFIX: str = "TABLE_"
    POINTS_MIN: int = 1
    POINTS_MAX: int = 1000
    TABLE_NAME_MAX_LENGTH: int = 50
    NOTE_MAX_LENGTH: int = 200
    LEDGER_WRITE_RETRIES: int = 5

    # Query
    LEADERBOARD_DEFAULT_LIMIT: int = 20
    HISTORY_DEFAULT_LIMIT: int = 10
    ACTIVITY_DEFAULT_LIMIT: int = 20
    QUERY_MAX_LIMIT: int = 200
    TIMEZONE: str = "UTC"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    def limits(self) -> Limits:
        return Limits(
            points=PointsLimits(min=self.POINTS_MIN, max=self.POINTS_MAX),
            name=LengthLimit(max_length=self.TABLE_NAME_MAX_LENGTH),
            note=LengthLimit(max_length=self.NOTE_MAX_LENGTH),
        )


settings = Settings()
