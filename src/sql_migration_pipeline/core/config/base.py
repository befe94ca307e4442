"""Base types and enums for configuration models."""

from enum import Enum


class BackoffStrategy(str, Enum):
    """How the delay between attempts grows."""

    CONSTANT = "constant"
    EXPONENTIAL = "exponential"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    TEXT = "text"


class SecretsProvider(str, Enum):
    """Secrets management providers."""

    ENV = "env"
    KEYVAULT = "keyvault"
    VAULT = "vault"


class MetricsBackend(str, Enum):
    """Metrics collection backends."""

    MEMORY = "memory"
    PROMETHEUS = "prometheus"


class DatabaseEdition(str, Enum):
    """Editions accepted by the target managed SQL service on import."""

    BASIC = "Basic"
    STANDARD = "Standard"
    PREMIUM = "Premium"
    GENERAL_PURPOSE = "GeneralPurpose"
    BUSINESS_CRITICAL = "BusinessCritical"
    HYPERSCALE = "Hyperscale"
