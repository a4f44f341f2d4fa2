from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Loading priority (highest to lowest):
    1. Environment variables
    2. .env file
    3. Default values below
    """

    # Environment
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    log_file: str = ""

    # Application
    app_name: str = "Bio Link"
    app_version: str = "1.0.0"

    # Server
    host: str = "127.0.0.1"
    port: int = 3000

    # Document store (MongoDB)
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_database: str = "biolink"
    mongo_server_selection_timeout_ms: int = 8000
    mongo_connect_timeout_ms: int = 10000
    store_eager_connect: bool = True  # Connect at startup so the first request doesn't wait

    # Media storage
    media_backend: str = "cloudinary"  # Options: "cloudinary", "memory"
    media_root_folder: str = "biolink"
    cloudinary_cloud_name: str = ""
    cloudinary_api_key: str = ""
    cloudinary_api_secret: str = ""
    media_upload_timeout: float = 120.0  # Seconds, per read/write on the upstream connection

    # Upload limits (bytes)
    max_avatar_bytes: int = 20 * 1024 * 1024
    max_background_bytes: int = 50 * 1024 * 1024
    max_audio_bytes: int = 200 * 1024 * 1024

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def cloudinary_configured(self) -> bool:
        return bool(
            self.cloudinary_cloud_name
            and self.cloudinary_api_key
            and self.cloudinary_api_secret
        )


# Create settings instance
settings = Settings()
