from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Negotiation Casebuilder API"
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    cors_origins: str = "http://localhost:3000"
    cors_allow_credentials: bool = True
    log_level: str = "INFO"
    log_max_string_length: int = 240
    request_id_header: str = "X-Request-ID"

    # Single local store; the whole case lives under one fixed key.
    database_url: str = "sqlite:///./casebuilder.db"
    case_storage_key: str = "negotiation_current_case"

    generation_backend: str = "template"  # template|bedrock
    aws_region: str = "us-east-1"
    bedrock_model_id: str = "amazon.nova-pro-v1:0"
    bedrock_lite_model_id: str = "amazon.nova-lite-v1:0"
    agent_temperature: float = 0.2
    agent_max_tokens: int = 2048

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


settings = Settings()
