"""abcscribe - agentic sheet music to ABC notation transcription."""

from abcscribe.config import AbcScribeConfig, load_config
from abcscribe.llm import ChatTransport, LLMError, create_transport
from abcscribe.log_sink import LogEvent, LogStream
from abcscribe.orchestrator import (
    ConversionCancelled,
    ConversionOrchestrator,
    ConversionRequest,
    ConversionResult,
    ConversionStatus,
    convert,
)
from abcscribe.validator import AbcValidator, ValidationOutcome, validate_abc

__version__ = "0.1.0"

__all__ = [
    "AbcScribeConfig",
    "AbcValidator",
    "ChatTransport",
    "ConversionCancelled",
    "ConversionOrchestrator",
    "ConversionRequest",
    "ConversionResult",
    "ConversionStatus",
    "LLMError",
    "LogEvent",
    "LogStream",
    "ValidationOutcome",
    "convert",
    "create_transport",
    "load_config",
    "validate_abc",
]
