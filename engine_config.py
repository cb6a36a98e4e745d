#!/usr/bin/env python3
"""
Configuration management for the transcript acquisition engine.

Loads timeouts, cache bounds and per-strategy feature flags from environment
variables with sensible defaults, clamps out-of-range values and exposes a
lazily created module-level instance.
"""

import os
from dataclasses import dataclass
from typing import Optional, Dict, Any

from logging_setup import get_logger

logger = get_logger(__name__)


@dataclass
class EngineConfig:
    """Configuration for transcript acquisition across all strategies."""

    # Platform
    origin: str = "https://www.youtube.com"
    preferred_language: Optional[str] = None

    # Cache bounds
    transcript_cache_size: int = 6
    param_cache_size: int = 10
    language_cache_size: int = 6

    # HTTP
    http_timeout_seconds: int = 15
    http_retry_attempts: int = 2

    # Access-token capture (milliseconds)
    token_capture_timeout_ms: int = 1500
    token_poll_interval_ms: int = 80
    toggle_click_delay_ms: int = 120

    # Rendered panel waits (milliseconds)
    panel_wait_ms: int = 7000
    menu_item_wait_ms: int = 1500
    tablist_wait_ms: int = 2000
    element_poll_interval_ms: int = 100

    # Feature flags
    enable_youtubei: bool = True
    enable_timedtext: bool = True
    enable_dom_panel: bool = True

    @classmethod
    def from_env(cls) -> 'EngineConfig':
        """Load configuration from environment variables with validation."""
        try:
            config = cls(
                origin=os.getenv("YT_ORIGIN", "https://www.youtube.com").rstrip("/"),
                preferred_language=os.getenv("PREFERRED_LANGUAGE") or None,

                transcript_cache_size=cls._parse_int_env("TRANSCRIPT_CACHE_SIZE", 6, min_val=1, max_val=100),
                param_cache_size=cls._parse_int_env("PARAM_CACHE_SIZE", 10, min_val=1, max_val=100),
                language_cache_size=cls._parse_int_env("LANGUAGE_CACHE_SIZE", 6, min_val=1, max_val=100),

                http_timeout_seconds=cls._parse_int_env("HTTP_TIMEOUT_SECONDS", 15, min_val=1, max_val=120),
                http_retry_attempts=cls._parse_int_env("HTTP_RETRY_ATTEMPTS", 2, min_val=1, max_val=5),

                token_capture_timeout_ms=cls._parse_int_env("TOKEN_CAPTURE_TIMEOUT_MS", 1500, min_val=100, max_val=10000),
                token_poll_interval_ms=cls._parse_int_env("TOKEN_POLL_INTERVAL_MS", 80, min_val=10, max_val=1000),
                toggle_click_delay_ms=cls._parse_int_env("TOGGLE_CLICK_DELAY_MS", 120, min_val=0, max_val=2000),

                panel_wait_ms=cls._parse_int_env("PANEL_WAIT_MS", 7000, min_val=500, max_val=30000),
                menu_item_wait_ms=cls._parse_int_env("MENU_ITEM_WAIT_MS", 1500, min_val=100, max_val=10000),
                tablist_wait_ms=cls._parse_int_env("TABLIST_WAIT_MS", 2000, min_val=100, max_val=10000),
                element_poll_interval_ms=cls._parse_int_env("ELEMENT_POLL_INTERVAL_MS", 100, min_val=10, max_val=1000),

                enable_youtubei=cls._parse_bool_env("ENABLE_YOUTUBEI", True),
                enable_timedtext=cls._parse_bool_env("ENABLE_TIMEDTEXT", True),
                enable_dom_panel=cls._parse_bool_env("ENABLE_DOM_PANEL", True),
            )

            config._validate_config()
            config._log_config()
            return config

        except Exception as e:
            logger.error(f"Failed to load engine configuration: {e}")
            logger.warning("Using default engine configuration")
            return cls()

    @staticmethod
    def _parse_bool_env(env_var: str, default: bool) -> bool:
        """Parse boolean environment variable."""
        value = os.getenv(env_var, str(default).lower())
        return value.lower() in ("1", "true", "yes", "on")

    @staticmethod
    def _parse_int_env(env_var: str, default: int, min_val: Optional[int] = None, max_val: Optional[int] = None) -> int:
        """Parse integer environment variable, clamping to the allowed range."""
        try:
            value = int(os.getenv(env_var, str(default)))

            if min_val is not None and value < min_val:
                logger.warning(f"{env_var}={value} is below minimum {min_val}, using {min_val}")
                return min_val

            if max_val is not None and value > max_val:
                logger.warning(f"{env_var}={value} is above maximum {max_val}, using {max_val}")
                return max_val

            return value

        except (ValueError, TypeError):
            logger.error(f"Invalid value for {env_var}: {os.getenv(env_var)}, using default {default}")
            return default

    def _validate_config(self) -> None:
        """Log warnings for problematic combinations."""
        warnings = []

        if not (self.enable_youtubei or self.enable_timedtext or self.enable_dom_panel):
            warnings.append("All transcript strategies disabled - every lookup will fail")

        if self.token_poll_interval_ms >= self.token_capture_timeout_ms:
            warnings.append(
                f"Token poll interval ({self.token_poll_interval_ms}ms) should be shorter than "
                f"the capture timeout ({self.token_capture_timeout_ms}ms)"
            )

        if self.element_poll_interval_ms >= self.panel_wait_ms:
            warnings.append("Element poll interval is not shorter than the panel wait")

        for warning in warnings:
            logger.warning(f"Configuration warning: {warning}")

    def _log_config(self) -> None:
        logger.info("Engine configuration loaded:")
        logger.info(f"  Origin: {self.origin}, preferred_language={self.preferred_language}")
        logger.info(f"  Caches: transcripts={self.transcript_cache_size}, params={self.param_cache_size}, languages={self.language_cache_size}")
        logger.info(f"  HTTP: timeout={self.http_timeout_seconds}s, attempts={self.http_retry_attempts}")
        logger.info(f"  Strategies: youtubei={self.enable_youtubei}, timedtext={self.enable_timedtext}, dom_panel={self.enable_dom_panel}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for serialization."""
        return {
            "origin": self.origin,
            "preferred_language": self.preferred_language,
            "caches": {
                "transcript_cache_size": self.transcript_cache_size,
                "param_cache_size": self.param_cache_size,
                "language_cache_size": self.language_cache_size,
            },
            "http": {
                "timeout_seconds": self.http_timeout_seconds,
                "retry_attempts": self.http_retry_attempts,
            },
            "waits_ms": {
                "token_capture_timeout": self.token_capture_timeout_ms,
                "token_poll_interval": self.token_poll_interval_ms,
                "toggle_click_delay": self.toggle_click_delay_ms,
                "panel_wait": self.panel_wait_ms,
                "menu_item_wait": self.menu_item_wait_ms,
                "tablist_wait": self.tablist_wait_ms,
                "element_poll_interval": self.element_poll_interval_ms,
            },
            "strategies": {
                "youtubei": self.enable_youtubei,
                "timedtext": self.enable_timedtext,
                "dom_panel": self.enable_dom_panel,
            },
        }


# Global configuration instance
_engine_config: Optional[EngineConfig] = None


def get_engine_config() -> EngineConfig:
    """Get the global engine configuration instance."""
    global _engine_config
    if _engine_config is None:
        _engine_config = EngineConfig.from_env()
    return _engine_config


def reload_engine_config() -> EngineConfig:
    """Reload configuration from environment variables."""
    global _engine_config
    _engine_config = EngineConfig.from_env()
    return _engine_config
