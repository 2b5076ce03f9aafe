from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
import os

# Load .env file if it exists, for local development
# In production, environment variables should be set directly.
if os.path.exists(".env"):
    from dotenv import load_dotenv
    load_dotenv()


class EngineSettings(BaseSettings):
    config_path: str = "assets/drive_engine.yml"
    professions_path: str = "assets/profession_profiles.yml"
    redis_url: str = "redis://localhost:6379/0"
    snapshot_key_prefix: str = "persona_snapshot"
    snapshot_ttl_seconds: Optional[int] = None
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix='DRIVE_ENGINE_')


engine_settings = EngineSettings()
