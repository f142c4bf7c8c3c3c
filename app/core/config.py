from dotenv import load_dotenv
from pydantic_settings import BaseSettings

load_dotenv(override=True)

class Settings(BaseSettings):
    PROJECT_NAME: str = "TrustEscrow"
    # Application settings
    PORT: int = 3000
    HOST: str = "127.0.0.1"
    VERSION: str = "0.1.0"
    DOC_PASSWORD: str | None = None
    CORS_ORIGINS: list[str] = ["*"]
    LOG_LEVEL: str = "INFO"

    # SSL settings
    SSL_KEY: str | None = None
    SSL_CERT: str | None = None

    # SQLAlchemy database URL
    DATABASE_URL: str = "sqlite:///./trustescrow.db"

    # Token configuration, access and refresh secrets must differ
    ACCESS_TOKEN_SECRET: str | None = None
    REFRESH_TOKEN_SECRET: str | None = None
    ENCODE_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_SECONDS: int = 900 # 15 minutes
    REFRESH_TOKEN_EXPIRE_SECONDS: int = 7 * 24 * 3600 # 7 days
    MAX_ACTIVE_SESSIONS: int = 5

    # Wallet login configuration
    NONCE_EXPIRY_SECONDS: int = 300 # 5 minutes

    # Password login configuration
    BCRYPT_ROUNDS: int = 12
    # uniform 401 on unknown email unless enabled
    LOGIN_REVEAL_UNKNOWN_ACCOUNT: bool = False

    # Debug settings
    DEBUG: bool = False

    class Config:
        env_file = ".env"

# Instantiate the settings
settings = Settings()
