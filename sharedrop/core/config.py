from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Sharedrop"
    secret_key: str
    session_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60
    upload_token_expire_minutes: int = 60
    database_url: str

    app_url: str = "http://localhost:8000"
    email_log_dir: str = "./logs/emails"
    log_level: str = "INFO"

    api_key_prefix: str = "sd_"

    cloudinary_cloud_name: str | None = None
    cloudinary_api_key: str | None = None
    cloudinary_api_secret: str | None = None
    cloudinary_upload_folder: str = "sharedrop"

    paypal_client_id: str | None = None
    paypal_client_secret: str | None = None
    paypal_api_base: str = "https://api-m.sandbox.paypal.com"

    class Config:
        env_file = ".env"


settings = Settings()
