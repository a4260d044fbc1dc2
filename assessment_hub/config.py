"""Application settings loaded from the environment (and an optional .env file)."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="ASSESSMENT_", case_sensitive=False)

    # Database
    database_url: str = "sqlite:///./assessment_hub.db"
    sql_echo: bool = False

    # Security
    secret_key: str = "change-me-in-production"

    # Logging
    log_level: str = "INFO"

    # Startup
    seed_demo_data: bool = True

    # Session lifecycle
    submission_grace_seconds: int = 5
    question_review_gate: str = "advisory"  # advisory | enforced
    dashboard_path: str = "/employee-dashboard"

    # Proctoring thresholds
    max_tab_switches: int = 3
    max_fullscreen_exits: int = 2
    max_copy_paste_attempts: int = 5
    max_dev_tools_opened: int = 1
    auto_submit_on_violation: bool = False

    # Code execution
    code_execution_mode: str = "simulated"  # simulated | sandboxed
    simulated_failure_rate: float = 0.3

    # Mail
    mail_enabled: bool = False
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    mail_from: str = "no-reply@assessment-hub.local"


@lru_cache
def get_settings() -> Settings:
    return Settings()
