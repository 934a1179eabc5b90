from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql+asyncpg://churchfin:churchfin_secret@db:5432/churchfin"
    AUTO_CREATE_TABLES: bool = True
    JWT_SECRET: str = "churchfin-jwt-secret-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRY_MINUTES: int = 480
    BCRYPT_ROUNDS: int = 12
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]
    AUDIT_STORAGE_PATH: str = "./audit_storage"
    AUDIT_JSONL_ENABLED: bool = True

    class Config:
        env_file = ".env"


settings = Settings()
