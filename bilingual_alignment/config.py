from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AlignmentSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore', populate_by_name=True)

    openrouter_api_key: str = Field(default='', alias='OPENROUTER_API_KEY')
    llm_base_url: str = Field(default='https://openrouter.ai/api/v1', alias='LLM_BASE_URL')
    llm_model: str = Field(default='google/gemini-2.5-flash', alias='LLM_MODEL')
    llm_api_timeout_ms: int = Field(default=60_000, alias='LLM_API_TIMEOUT_MS')
    llm_max_retries: int = Field(default=2, alias='LLM_MAX_RETRIES')
    llm_retry_delay_ms: int = Field(default=1000, alias='LLM_RETRY_DELAY_MS')
    llm_max_tokens: int = Field(default=1500, alias='LLM_MAX_TOKENS')
    llm_temperature: float = Field(default=0.1, alias='LLM_TEMPERATURE')
    llm_http_referer: str = Field(default='http://localhost:3000', alias='LLM_HTTP_REFERER')
    llm_app_title: str = Field(default='PodSum.cc', alias='LLM_APP_TITLE')

    near_window_sec: int = Field(default=12, alias='ALIGNMENT_NEAR_WINDOW_SEC')
    max_missing: int = Field(default=20, alias='ALIGNMENT_MAX_MISSING')
    backfill_limit: int = Field(default=3, alias='ALIGNMENT_BACKFILL_LIMIT')

    @property
    def effective_timeout_seconds(self) -> float:
        return max(10_000, int(self.llm_api_timeout_ms)) / 1000.0

    @property
    def effective_max_retries(self) -> int:
        return max(0, int(self.llm_max_retries))

    @property
    def effective_retry_delay_seconds(self) -> float:
        return max(200, int(self.llm_retry_delay_ms)) / 1000.0


@lru_cache(maxsize=1)
def get_settings() -> AlignmentSettings:
    return AlignmentSettings()
