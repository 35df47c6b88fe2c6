from pydantic import BaseModel, Field
from typing import Literal


DEFAULT_PROHIBITED_DIRECTIVES = [
    "%%measure",
    "%%page",
    "%%staves",
    "%%score",
    "%%abc",
    "%%abc2pscompat",
    "%%bg",
    "%%eps",
    "%%ps",
]


class LLMSettings(BaseModel):
    provider: Literal["google"] = "google"
    model: str = "gemini-3-pro-preview"
    api_key_env: str = "GOOGLE_API_KEY"
    timeout: int = Field(default=120, gt=0)
    max_retries: int = Field(default=3, ge=0)
    # Per-model overrides of the registry's thinking budget.
    thinking_budgets: dict[str, int] = Field(default_factory=dict)


class ConversionSettings(BaseModel):
    max_turns: int = Field(default=6, ge=1, le=20)
    preview_threshold: int = Field(default=50, ge=0)
    fragment_timeout: float | None = Field(default=None, gt=0)


class ValidationSettings(BaseModel):
    strict: bool = False
    prohibited_directives: list[str] = Field(
        default_factory=lambda: list(DEFAULT_PROHIBITED_DIRECTIVES)
    )


class AbcScribeConfig(BaseModel):
    llm: LLMSettings = Field(default_factory=LLMSettings)
    conversion: ConversionSettings = Field(default_factory=ConversionSettings)
    validation: ValidationSettings = Field(default_factory=ValidationSettings)
    log_level: Literal["debug", "info", "warn", "error"] = "info"
    log_format: Literal["text", "json"] = "text"
