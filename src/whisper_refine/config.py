# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Configuration management for Local Refine.

Loads settings from ~/.whisper_refine/config.toml with sensible defaults.
The resulting Config is a snapshot: the engine reads it per call and never
writes it back.
"""

import os
import sys
import threading
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Literal, Optional
from urllib.parse import urlparse

from .profiles import (
    PASSTHROUGH_PROFILE_ID,
    Profile,
    ProfileError,
    profile_from_dict,
    validate_profile,
)

CONFIG_DIR = Path(os.environ.get("WHISPER_REFINE_HOME", str(Path.home() / ".whisper_refine")))
CONFIG_FILE = Path(os.environ.get("WHISPER_REFINE_CONFIG", str(CONFIG_DIR / "config.toml")))

# Available wire protocols
API_OLLAMA = "ollama"
API_OPENAI = "openai"
API_TYPES = (API_OLLAMA, API_OPENAI)
ApiType = Literal["ollama", "openai"]

DEFAULT_ENDPOINT = "http://localhost:11434"
DEFAULT_MODEL = "llama3.2"
DEFAULT_TIMEOUT = 10
DEFAULT_MAX_TOKENS = 1000
DEFAULT_PROBE_TIMEOUT = 2

# Default configuration
DEFAULT_CONFIG = """# Local Refine Configuration
# Edit this file to customize behavior

[refine]
# Rewrite transcriptions with a local LLM before they are pasted
enabled = false

# Profile applied to every transcription ("raw" = no processing)
# Built-in: professional, llm_agent, email, notes, code_comments, raw
active_profile = "raw"

# Base URL of the LLM service (no path)
endpoint = "http://localhost:11434"

# Model name as the service knows it
model = "llama3.2"

# Wire protocol: "ollama" (/api/generate) or "openai" (/v1/chat/completions)
api_type = "ollama"

# Seconds before a rewrite is abandoned and the raw text is used instead
timeout = 10

# Response token limit (OpenAI-compatible servers only)
max_tokens = 1000

# Seconds allowed for the connectivity check and model listing
probe_timeout = 2

# Custom profiles. The template must contain {transcription}.
#
# [[profiles]]
# id = "tweet"
# name = "Tweet"
# description = "Short, punchy social post"
# system_prompt = "You turn speech into a short social media post."
# user_prompt_template = "Rewrite as a tweet:\\n\\n{transcription}"
# streaming = true
# timeout = 20
# temperature = 0.7
"""


@dataclass
class Config:
    """Snapshot of the settings consumed by the refine pipeline."""
    enabled: bool = False
    active_profile_id: str = PASSTHROUGH_PROFILE_ID
    endpoint: str = DEFAULT_ENDPOINT
    model: str = DEFAULT_MODEL
    api_type: ApiType = API_OLLAMA
    timeout_seconds: float = DEFAULT_TIMEOUT
    max_tokens: int = DEFAULT_MAX_TOKENS
    probe_timeout_seconds: float = DEFAULT_PROBE_TIMEOUT
    custom_profiles: List[Profile] = field(default_factory=list)


def load_config(path: Optional[Path] = None) -> Config:
    """Load configuration from file, creating default if missing."""
    config_file = path or CONFIG_FILE

    if path is None and not config_file.exists():
        try:
            config_file.parent.mkdir(parents=True, exist_ok=True)
            config_file.write_text(DEFAULT_CONFIG, encoding='utf-8')
        except OSError as e:
            print(f"Config write failed: {e}", file=sys.stderr)

    # Load and parse config
    data = {}
    try:
        with open(config_file, 'rb') as f:
            data = tomllib.load(f)
    except FileNotFoundError:
        pass
    except Exception as e:
        print(f"Config parse error: {e}", file=sys.stderr)

    # Build config object with defaults
    config = Config()

    section = data.get('refine', {})
    if not isinstance(section, dict):
        print("Config warning: [refine] must be a table, using defaults", file=sys.stderr)
        section = {}
    if section:
        config.enabled = section.get('enabled', config.enabled)
        config.active_profile_id = section.get('active_profile', config.active_profile_id)
        config.endpoint = section.get('endpoint', config.endpoint)
        config.model = section.get('model', config.model)
        config.api_type = section.get('api_type', config.api_type)
        config.timeout_seconds = section.get('timeout', config.timeout_seconds)
        config.max_tokens = section.get('max_tokens', config.max_tokens)
        config.probe_timeout_seconds = section.get('probe_timeout', config.probe_timeout_seconds)

    entries = data.get('profiles', [])
    if not isinstance(entries, list):
        print("Config warning: profiles must be an array of [[profiles]] tables, ignoring", file=sys.stderr)
        entries = []
    for entry in entries:
        profile = _load_profile(entry)
        if profile is not None:
            config.custom_profiles.append(profile)

    # Validate and sanitize config values
    _validate_config(config)

    return config


def _load_profile(entry) -> Optional[Profile]:
    """Build a custom profile from a [[profiles]] table, or None if invalid."""
    if not isinstance(entry, dict):
        print("Config warning: ignoring malformed [[profiles]] entry", file=sys.stderr)
        return None
    try:
        profile = profile_from_dict(entry)
        validate_profile(profile)
    except (ProfileError, TypeError, ValueError) as e:
        print(f"Config warning: ignoring profile '{entry.get('id', '?')}': {e}", file=sys.stderr)
        return None
    return profile


def _is_valid_url(url: str) -> bool:
    """Check if a string is a valid HTTP/HTTPS URL."""
    try:
        result = urlparse(url)
        return result.scheme in ("http", "https") and bool(result.netloc)
    except (ValueError, AttributeError):
        return False


def _validate_config(config: Config):
    """Validate and sanitize configuration values."""
    if not isinstance(config.enabled, bool):
        print("Config warning: enabled must be true or false, using false", file=sys.stderr)
        config.enabled = False

    if not isinstance(config.endpoint, str) or not _is_valid_url(config.endpoint):
        print(f"Config warning: Invalid endpoint '{config.endpoint}', using default", file=sys.stderr)
        config.endpoint = DEFAULT_ENDPOINT

    if not isinstance(config.model, str) or not config.model.strip():
        print(f"Config warning: model cannot be empty, using '{DEFAULT_MODEL}'", file=sys.stderr)
        config.model = DEFAULT_MODEL

    if config.api_type not in API_TYPES:
        print(f"Config warning: Invalid api_type '{config.api_type}', using '{API_OLLAMA}'", file=sys.stderr)
        config.api_type = API_OLLAMA

    if not isinstance(config.active_profile_id, str) or not config.active_profile_id:
        config.active_profile_id = PASSTHROUGH_PROFILE_ID

    if not isinstance(config.timeout_seconds, (int, float)) or config.timeout_seconds <= 0:
        print(f"Config warning: timeout must be positive, using {DEFAULT_TIMEOUT}", file=sys.stderr)
        config.timeout_seconds = DEFAULT_TIMEOUT

    if not isinstance(config.max_tokens, int) or config.max_tokens <= 0:
        print(f"Config warning: max_tokens must be a positive integer, using {DEFAULT_MAX_TOKENS}", file=sys.stderr)
        config.max_tokens = DEFAULT_MAX_TOKENS

    if not isinstance(config.probe_timeout_seconds, (int, float)) or config.probe_timeout_seconds <= 0:
        print(f"Config warning: probe_timeout must be positive, using {DEFAULT_PROBE_TIMEOUT}", file=sys.stderr)
        config.probe_timeout_seconds = DEFAULT_PROBE_TIMEOUT


# Global config instance with thread-safe initialization
_config: Optional[Config] = None
_config_lock = threading.Lock()


def get_config() -> Config:
    """Get the global configuration instance (thread-safe)."""
    global _config
    if _config is None:
        with _config_lock:
            # Double-check locking pattern for thread safety
            if _config is None:
                _config = load_config()
    return _config
