from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Groq
    groq_api_key: str = "gsk_placeholder"
    reasoning_models: list[str] = [
        "deepseek-r1-distill-llama-70b",
        "qwen-qwq-32b",
    ]
    vision_models: list[str] = [
        "meta-llama/llama-4-scout-17b-16e-instruct",
        "meta-llama/llama-4-maverick-17b-128e-instruct",
    ]
    text_models: list[str] = [
        "llama-3.3-70b-versatile",
        "llama-3.1-8b-instant",
    ]

    # Gemini (last-resort extraction, duplicate verification)
    gemini_api_key: str = "gemini_placeholder"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_models: list[str] = ["gemini-2.5-flash", "gemini-2.5-flash-lite"]

    # Fallback chain
    attempt_timeout_seconds: float = 25.0

    # Duplicate resolution
    dedup_overlap_threshold: float = 0.2
    dedup_max_candidates: int = 3

    # Clarification
    clarification_ttl_minutes: int = 30

    # Context
    history_limit: int = 3
    timezone_offset_hours: int = 7
    default_deadline_time: str = "23:59"
    section_pattern: str = r"[KPR][1-9]"

    # Channels
    academic_channels: list[str] = []

    # Storage
    db_path: str = "assignment_bot.db"
    schedule_path: str = "schedule.json"

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
