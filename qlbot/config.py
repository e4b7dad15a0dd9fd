from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    tg_bot_token: str = ""
    ql_base_url: str = "http://localhost:5700"
    ql_client_id: str = ""
    ql_client_secret: str = ""
    admin_user_ids: str = ""
    webhook_secret: str = ""
    alert_chat_id: str = ""

    database_url: str = "sqlite:///./qlbot.db"
    cache_backend: Literal["memory", "database"] = "memory"
    cache_sweep_enabled: bool = True
    cache_sweep_interval_seconds: float = 300.0
    conversation_state_ttl_seconds: float = 600.0

    token_refresh_buffer_seconds: float = 300.0
    token_early_expiry_seconds: float = 120.0
    token_timeout_seconds: float = 5.0
    request_timeout_seconds: float = 10.0

    cache_ttl_tasks: float = 30.0
    cache_ttl_envs: float = 60.0
    cache_ttl_subs: float = 60.0
    cache_ttl_deps: float = 120.0
    cache_ttl_scripts: float = 30.0

    log_level: str = "INFO"
    debug: bool = False

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def allowed_user_ids(self) -> set[str]:
        return {uid.strip() for uid in self.admin_user_ids.split(",") if uid.strip()}

    def is_user_allowed(self, user_id: int) -> bool:
        """Empty allow-list means the bot is open to everyone."""
        allowed = self.allowed_user_ids
        if not allowed:
            return True
        return str(user_id) in allowed

    def cache_ttls(self) -> dict[str, float]:
        return {
            "tasks": self.cache_ttl_tasks,
            "envs": self.cache_ttl_envs,
            "subs": self.cache_ttl_subs,
            "deps": self.cache_ttl_deps,
            "scripts": self.cache_ttl_scripts,
        }


settings = Settings()
