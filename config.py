"""
Configuration validation and management for the Public Service Chatbot.

This module validates all required environment variables on startup
and provides centralized configuration access.
"""

import os
from typing import Optional, List
from dataclasses import dataclass
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


@dataclass
class ConfigValidationError:
    """Represents a configuration validation error."""
    key: str
    message: str
    is_critical: bool = True


@dataclass
class AppConfig:
    """Application configuration with validated values."""

    # Gemini
    gemini_api_key: str = ""
    gemini_model_name: str = "gemini-2.0-flash"
    max_output_tokens: int = 5000
    temperature: float = 0.7

    # Messenger
    page_access_token: str = ""
    verify_token: str = ""
    graph_api_url: str = "https://graph.facebook.com/v2.6/me/messages"

    # Storage
    database_url: str = "sqlite:///conversations.db"
    document_path: str = "docs/huong_dan_dich_vu_cong.txt"

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 3000
    debug: bool = False
    log_level: str = "INFO"

    # Dialogue Settings
    top_k_results: int = 3
    history_limit: int = 10
    max_message_length: int = 2000
    message_pause_seconds: float = 0.5
    backend_timeout_seconds: float = 30.0

    # Delivery
    send_max_retries: int = 3
    send_retry_delay: float = 1.0


def _parse_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


# Environment variable -> (AppConfig field, parser)
ENV_FIELDS = {
    "GEMINI_API_KEY": ("gemini_api_key", str),
    "GEMINI_MODEL_NAME": ("gemini_model_name", str),
    "MAX_OUTPUT_TOKENS": ("max_output_tokens", int),
    "TEMPERATURE": ("temperature", float),
    "PAGE_ACCESS_TOKEN": ("page_access_token", str),
    "VERIFY_TOKEN": ("verify_token", str),
    "GRAPH_API_URL": ("graph_api_url", str),
    "DATABASE_URL": ("database_url", str),
    "DOCUMENT_PATH": ("document_path", str),
    "HOST": ("host", str),
    "PORT": ("port", int),
    "DEBUG": ("debug", _parse_bool),
    "LOG_LEVEL": ("log_level", str),
    "TOP_K_RESULTS": ("top_k_results", int),
    "HISTORY_LIMIT": ("history_limit", int),
    "MAX_MESSAGE_LENGTH": ("max_message_length", int),
    "MESSAGE_PAUSE_SECONDS": ("message_pause_seconds", float),
    "BACKEND_TIMEOUT_SECONDS": ("backend_timeout_seconds", float),
    "SEND_MAX_RETRIES": ("send_max_retries", int),
    "SEND_RETRY_DELAY": ("send_retry_delay", float),
}


class ConfigValidator:
    """Validates and loads application configuration."""

    REQUIRED_VARS = [
        ("GEMINI_API_KEY", "Required for chat generation"),
        ("PAGE_ACCESS_TOKEN", "Required for sending messages through the Send API"),
        ("VERIFY_TOKEN", "Required for the webhook verification handshake"),
    ]

    OPTIONAL_VARS = [
        ("DATABASE_URL", "Conversation history falls back to a local SQLite file"),
        ("DOCUMENT_PATH", "Reference document falls back to the bundled guide"),
    ]

    def __init__(self):
        self.errors: List[ConfigValidationError] = []
        self.warnings: List[str] = []
        self.config: Optional[AppConfig] = None

    def validate(self) -> bool:
        """
        Validate all configuration values.

        Returns:
            bool: True if all critical validations pass
        """
        self.errors = []
        self.warnings = []

        for var_name, description in self.REQUIRED_VARS:
            value = os.getenv(var_name)
            if not value or value.strip() == "":
                self.errors.append(ConfigValidationError(
                    key=var_name,
                    message=f"Missing required environment variable: {var_name}. {description}",
                    is_critical=True
                ))

        for var_name, description in self.OPTIONAL_VARS:
            value = os.getenv(var_name)
            if not value or value.strip() == "":
                self.warnings.append(f"Optional variable not set: {var_name}. {description}")

        self._validate_graph_api_url()
        self._validate_document_path()
        self._validate_port()
        self._validate_numeric_values()

        return len([e for e in self.errors if e.is_critical]) == 0

    def _validate_graph_api_url(self) -> None:
        """Validate Send API URL format."""
        url = os.getenv("GRAPH_API_URL", "")
        if url and not url.startswith("https://"):
            self.errors.append(ConfigValidationError(
                key="GRAPH_API_URL",
                message=f"Invalid GRAPH_API_URL format: {url}. Must start with https://",
                is_critical=True
            ))

    def _validate_document_path(self) -> None:
        """Warn when the reference document does not exist yet."""
        path = os.getenv("DOCUMENT_PATH", AppConfig.document_path)
        if not os.path.isfile(path):
            self.warnings.append(
                f"DOCUMENT_PATH={path} does not exist. Retrieval will return no context until it is reloaded"
            )

    def _validate_port(self) -> None:
        """Validate port number."""
        port_str = os.getenv("PORT", "3000")
        try:
            port = int(port_str)
            if port < 1 or port > 65535:
                self.errors.append(ConfigValidationError(
                    key="PORT",
                    message=f"Invalid PORT: {port}. Must be between 1 and 65535",
                    is_critical=False
                ))
        except ValueError:
            self.errors.append(ConfigValidationError(
                key="PORT",
                message=f"Invalid PORT: {port_str}. Must be a number",
                is_critical=False
            ))

    def _validate_numeric_values(self) -> None:
        """Validate numeric configuration values."""
        numeric_vars = [
            ("TOP_K_RESULTS", 1, 20),
            ("HISTORY_LIMIT", 0, 100),
            ("MAX_MESSAGE_LENGTH", 100, 2000),
            ("MAX_OUTPUT_TOKENS", 1, 8192),
            ("BACKEND_TIMEOUT_SECONDS", 1, 300),
            ("SEND_MAX_RETRIES", 1, 10),
        ]

        for var_name, min_val, max_val in numeric_vars:
            value_str = os.getenv(var_name)
            if value_str:
                try:
                    value = float(value_str)
                    if value < min_val or value > max_val:
                        self.warnings.append(
                            f"{var_name}={value_str} is outside recommended range [{min_val}, {max_val}]"
                        )
                except ValueError:
                    self.errors.append(ConfigValidationError(
                        key=var_name,
                        message=f"Invalid {var_name}: {value_str}. Must be a number",
                        is_critical=False
                    ))

    def load_config(self) -> AppConfig:
        """
        Build an AppConfig from the environment.

        Unset or unparsable values fall back to the AppConfig defaults.
        """
        values = {}
        for env_name, (field_name, parse) in ENV_FIELDS.items():
            raw = os.getenv(env_name)
            if raw is None or raw.strip() == "":
                continue
            try:
                values[field_name] = parse(raw.strip())
            except ValueError:
                self.warnings.append(f"Ignoring unparsable {env_name}={raw}")

        self.config = AppConfig(**values)
        return self.config

    def print_status(self) -> None:
        """Print configuration status to console."""
        print("\n" + "=" * 60)
        print("CONFIGURATION VALIDATION")
        print("=" * 60)

        if self.errors:
            print("\n[X] ERRORS:")
            for error in self.errors:
                critical = "[CRITICAL]" if error.is_critical else "[WARNING]"
                print(f"  {critical} {error.key}: {error.message}")

        if self.warnings:
            print("\n[!] WARNINGS:")
            for warning in self.warnings:
                print(f"  - {warning}")

        if not self.errors and not self.warnings:
            print("\n[OK] All configuration values are valid!")

        print("=" * 60 + "\n")


def validate_config_on_startup() -> AppConfig:
    """
    Validate configuration on application startup.

    Raises:
        ValueError: If critical configuration is missing

    Returns:
        AppConfig: Validated configuration
    """
    validator = ConfigValidator()
    is_valid = validator.validate()
    config = validator.load_config()

    validator.print_status()

    if not is_valid:
        error_msgs = [f"{error.key}: {error.message}" for error in validator.errors if error.is_critical]
        raise ValueError(
            f"Cannot start application due to configuration errors. "
            f"Missing or invalid: {', '.join(error_msgs)}"
        )

    return config


# Global config instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """
    Get the global configuration instance.

    Returns:
        AppConfig: Application configuration
    """
    global _config
    if _config is None:
        _config = validate_config_on_startup()
    return _config
