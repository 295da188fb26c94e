from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel
from pydantic_settings import BaseSettings

# Get the project root directory (parent of studypack folder)
PROJECT_ROOT = Path(__file__).parent.parent


class PackPolicy(BaseModel):
    """Caps used when composing a daily pack"""
    due_flashcards: int = 12
    due_mcqs: int = 8

    weak_topic_limit: int = 5
    weak_topic_min_attempts: int = 3
    weak_flashcards: int = 5
    weak_mcqs: int = 3

    new_flashcards: int = 3
    new_mcqs: int = 2

    max_items: int = 25

    # how many rows per item type the store hands back for the randomized buckets
    candidate_pool_size: int = 200


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""
    database_url: str = "sqlite:///./studypack.db"
    log_level: str = "INFO"

    # Scheduling
    scheduler_timezone: str = "Asia/Bangkok"
    daily_schedule_hour: int = 7
    daily_schedule_minute: int = 0

    # Batch runs
    batch_max_workers: int = 4
    batch_user_timeout_seconds: float = 30.0

    # Topic accuracy
    accuracy_window_days: int = 7
    weak_accuracy_threshold: float = 70.0
    weak_topic_default_limit: int = 10
    weak_topic_default_min_attempts: int = 3

    notification_preview_size: int = 10

    pack: PackPolicy = PackPolicy()

    class Config:
        env_file = str(PROJECT_ROOT / ".env")
        env_prefix = "STUDYPACK_"
        env_nested_delimiter = "__"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Load settings once per process, on first use"""
    return Settings()
