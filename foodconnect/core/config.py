from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    jwt_secret: str = "dev"
    jwt_alg: str = "HS256"
    access_ttl_min: int = 30

    use_mongo: bool = False
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "foodconnect"
    # needs a replica set; without it writes fall back to version guards only
    mongo_transactions: bool = True

    sweeper_enabled: bool = True
    sweep_interval_seconds: float = 60.0

    default_radius_km: float = 20.0
    default_page_limit: int = 5
    search_page_limit: int = 10
    # revert a "requested" donation to "available" when its last requester cancels
    reopen_on_last_cancel: bool = False

    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 465
    smtp_user: str = ""
    smtp_password: str = ""
    email_from_name: str = "FoodConnect"

    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
