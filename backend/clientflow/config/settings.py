"""Application Settings - Central Configuration"""
from functools import lru_cache
from typing import Dict
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..domain.enums import Environment, InitializePolicy


class Settings(BaseSettings):
    """Settings loaded from environment variables and .env"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Definitions
    workflows_dir: str = "./data/workflows"
    tasks_dir: str = "./data/tasks"
    definition_cache_enabled: bool = False  # Hot reload in development
    definition_cache_ttl_seconds: int = 300

    # Client state store
    state_dir: str = "./data/client_state"
    initialize_policy: InitializePolicy = InitializePolicy.FAIL

    # Legacy migration
    legacy_clients_path: str = "./data/legacy/clients.yaml"
    legacy_initial_step_id: str = "start"
    # JSON in the environment, e.g. WORKFLOW_BY_CLIENT_TYPE='{"trust": "trust_onboarding_v1"}'
    workflow_by_client_type: Dict[str, str] = Field(
        default_factory=lambda: {
            "corporate": "corporate_onboarding_v1",
            "individual": "individual_onboarding_v1",
        }
    )
    default_workflow_id: str = "individual_onboarding_v1"

    # Logging
    logs_path: str = "./logs"
    log_level: str = "INFO"

    # Environment
    environment: Environment = Environment.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.environment == Environment.PRODUCTION


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
