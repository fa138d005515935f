from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    APP_NAME: str = "authguard"
    APP_ENV: str = "production"
    LOG_LEVEL: str = "INFO"

    # Brute-force protection
    MAX_LOGIN_ATTEMPTS: int = 5
    LOCKOUT_MINUTES: int = 15
    LOCKOUT_CLEANUP_INTERVAL_SECONDS: int = 60 * 60

    @property
    def is_production(self) -> bool:
        return self.APP_ENV.lower() in ("production", "prod")

    @property
    def LOCKOUT_SECONDS(self) -> int:
        return self.LOCKOUT_MINUTES * 60


settings = Settings()
