from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class JudgeSettings(BaseModel):
    api_key: Optional[str] = Field(default=None, description="Missing key means every verdict fails open.")
    base_url: str = "https://ai.gateway.lovable.dev/v1"
    model: str = "google/gemini-2.5-flash-lite"
    temperature: float = Field(default=0.1, ge=0, le=2)
    timeout_seconds: float = Field(default=15.0, gt=0)


class GatewaySettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)
    path: str = "/content-moderation"
    function_url: Optional[str] = Field(
        default=None,
        description="Remote moderation function URL. When unset the gateway runs in-process.",
    )
    api_key: Optional[str] = None


class StorageSettings(BaseModel):
    sqlite_path: str = "trutharrow.db"


class ClientSettings(BaseModel):
    state_path: str = "trutharrow_client.json"
    feed_stale_seconds: float = Field(default=30.0, ge=0)


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO", description="Logging level: DEBUG, INFO, WARNING, ERROR")
    use_json: bool = Field(default=False, description="Use JSON format instead of colored output")


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TRUTHARROW_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    judge: JudgeSettings = JudgeSettings()
    gateway: GatewaySettings = GatewaySettings()
    storage: StorageSettings = StorageSettings()
    client: ClientSettings = ClientSettings()
    logging: LoggingSettings = LoggingSettings()
