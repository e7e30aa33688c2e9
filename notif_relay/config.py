from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    sns_signature_mode: str = "permissive_audit"  # permissive_audit | enforce
    sns_signing_host_pattern: str = r"sns\.us-east-1\.amazonaws\.com"
    sns_certificate_timeout_seconds: float = 5.0
    sns_subscribe_timeout_seconds: float = 10.0
    group_traits: bool = True
    tenant_api_timeout_seconds: float = 12.0
    notify_path: str = "/notify"

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
