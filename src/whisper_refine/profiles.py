# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Rewrite profiles for Local Refine.

Built-in profiles live in BUILT_IN_PROFILES. User-defined profiles are
managed through ProfileStore, which validates them at save time.
"""

import dataclasses
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from .utils import log

# Placeholder replaced by the raw transcription
SUBSTITUTION_TOKEN = "{transcription}"

# The one profile that never reaches a model
PASSTHROUGH_PROFILE_ID = "raw"

# Field limits enforced on custom profiles
MAX_NAME_LENGTH = 50
MAX_DESCRIPTION_LENGTH = 200
MAX_SYSTEM_PROMPT_LENGTH = 1000
MAX_USER_TEMPLATE_LENGTH = 500


@dataclass
class Profile:
    """A named rewrite configuration."""
    id: str
    name: str
    description: str
    system_prompt: str
    user_prompt_template: str
    is_built_in: bool = False
    timeout_seconds: Optional[float] = None
    streaming: Optional[bool] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def is_passthrough(self) -> bool:
        return self.id == PASSTHROUGH_PROFILE_ID


# ============================================================================
# ERRORS
# ============================================================================

class ProfileError(Exception):
    """Base class for profile management failures."""
    pass


class ProfileValidationError(ProfileError, ValueError):
    """Raised when a profile fails validation. Carries the offending field."""

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}")


class ProfileNotFoundError(ProfileError, KeyError):
    """Raised when a profile id is not in the catalog."""

    def __str__(self) -> str:
        return f"Profile not found: {self.args[0]}" if self.args else "Profile not found"


class ProtectedProfileError(ProfileError):
    """Raised when trying to modify or delete a built-in profile."""
    pass


# ============================================================================
# BUILT-IN PROFILES
# ============================================================================

def _built_in(id: str, name: str, description: str, system_prompt: str, user_prompt_template: str) -> Profile:
    return Profile(
        id=id,
        name=name,
        description=description,
        system_prompt=system_prompt,
        user_prompt_template=user_prompt_template,
        is_built_in=True,
    )


BUILT_IN_PROFILES: List[Profile] = [
    _built_in(
        "professional",
        "Professional",
        "Formal tone suitable for workplace communication",
        "You are a professional writing assistant. Convert casual speech into polished, "
        "professional text suitable for workplace communication. Fix grammar, remove filler "
        "words, and use formal tone while maintaining the original meaning.",
        "Convert this speech transcription into professional text:\n\n{transcription}",
    ),
    _built_in(
        "llm_agent",
        "LLM Agent Instructions",
        "Clear, structured instructions for AI agents",
        "You are a technical instruction optimizer. Convert natural speech into clear, "
        "structured instructions for AI agents. Use imperative voice, be specific and "
        "unambiguous, and remove conversational elements.",
        "Convert this speech into a clear instruction for an AI agent:\n\n{transcription}",
    ),
    _built_in(
        "email",
        "Email",
        "Well-formatted email with proper structure",
        "You are an email writing assistant. Convert speech into a well-formatted email. "
        "Add appropriate greeting and closing if missing, use proper paragraphs, and maintain "
        "professional yet friendly tone.",
        "Convert this speech into a well-formatted email:\n\n{transcription}",
    ),
    _built_in(
        "notes",
        "Notes",
        "Concise bullet points and key phrases",
        "You are a note-taking assistant. Convert speech into concise, well-organized notes "
        "using bullet points. Extract key information and organize logically.",
        "Convert this speech into organized notes:\n\n{transcription}",
    ),
    _built_in(
        "code_comments",
        "Code Comments",
        "Technical documentation style",
        "You are a technical documentation assistant. Convert speech into clear, concise code "
        "comments or documentation. Use technical language appropriately and be precise.",
        "Convert this speech into a code comment or technical documentation:\n\n{transcription}",
    ),
    _built_in(
        PASSTHROUGH_PROFILE_ID,
        "Raw (No Processing)",
        "Bypass summarization, paste raw transcription",
        "",
        "",
    ),
]

BUILT_IN_IDS = frozenset(p.id for p in BUILT_IN_PROFILES)

_REQUIRED_FIELDS = ("id", "name", "description", "user_prompt_template")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_custom_profile(
    id: str,
    name: str,
    description: str,
    system_prompt: str,
    user_prompt_template: str,
    **overrides,
) -> Profile:
    """Create a custom profile stamped with creation and update times."""
    now = _now()
    return Profile(
        id=id,
        name=name,
        description=description,
        system_prompt=system_prompt,
        user_prompt_template=user_prompt_template,
        is_built_in=False,
        created_at=now,
        updated_at=now,
        **overrides,
    )


def profile_from_dict(data: dict) -> Profile:
    """
    Build a custom profile from a settings mapping.

    Accepts the config file spelling ("timeout") as well as the attribute name.

    Raises:
        TypeError: If a required field is missing
    """
    missing = [key for key in _REQUIRED_FIELDS if key not in data]
    if missing:
        raise TypeError(f"missing required field(s): {', '.join(missing)}")

    return Profile(
        id=data["id"],
        name=data["name"],
        description=data["description"],
        system_prompt=data.get("system_prompt", ""),
        user_prompt_template=data["user_prompt_template"],
        is_built_in=False,
        timeout_seconds=data.get("timeout", data.get("timeout_seconds")),
        streaming=data.get("streaming"),
        temperature=data.get("temperature"),
        top_p=data.get("top_p"),
        created_at=data.get("created_at"),
        updated_at=data.get("updated_at"),
    )


# ============================================================================
# VALIDATION
# ============================================================================

def _check_text(value, field: str, max_length: int, required: bool = True):
    if not isinstance(value, str):
        raise ProfileValidationError(field, "must be text")
    if required and not value.strip():
        raise ProfileValidationError(field, "cannot be empty")
    if len(value) > max_length:
        raise ProfileValidationError(field, f"must be {max_length} characters or less")


def validate_profile(profile: Profile) -> None:
    """
    Validate a custom profile before it is saved.

    Raises:
        ProfileValidationError: With the first offending field and the reason
    """
    if not isinstance(profile.id, str) or not profile.id.strip():
        raise ProfileValidationError("id", "cannot be empty")

    _check_text(profile.name, "name", MAX_NAME_LENGTH)
    _check_text(profile.description, "description", MAX_DESCRIPTION_LENGTH)
    _check_text(profile.system_prompt, "system_prompt", MAX_SYSTEM_PROMPT_LENGTH, required=False)

    template = profile.user_prompt_template
    _check_text(template, "user_prompt_template", MAX_USER_TEMPLATE_LENGTH)
    if SUBSTITUTION_TOKEN not in template:
        raise ProfileValidationError("user_prompt_template", f"must contain {SUBSTITUTION_TOKEN}")

    if profile.timeout_seconds is not None:
        if isinstance(profile.timeout_seconds, bool) or not isinstance(profile.timeout_seconds, (int, float)) \
                or profile.timeout_seconds <= 0:
            raise ProfileValidationError("timeout_seconds", "must be a positive number")

    if profile.streaming is not None and not isinstance(profile.streaming, bool):
        raise ProfileValidationError("streaming", "must be true or false")

    if profile.temperature is not None:
        if isinstance(profile.temperature, bool) or not isinstance(profile.temperature, (int, float)) \
                or not 0.0 <= profile.temperature <= 2.0:
            raise ProfileValidationError("temperature", "must be between 0.0 and 2.0")

    if profile.top_p is not None:
        if isinstance(profile.top_p, bool) or not isinstance(profile.top_p, (int, float)) \
                or not 0.0 < profile.top_p <= 1.0:
            raise ProfileValidationError("top_p", "must be greater than 0.0 and at most 1.0")


# ============================================================================
# PROFILE STORE
# ============================================================================

class ProfileStore:
    """
    Catalog of built-in and custom profiles.

    All access goes through a single lock. Reads hand out copies, so no
    caller ever holds a reference into the catalog itself.
    """

    def __init__(self, custom_profiles: Iterable[Profile] = ()):
        self._lock = threading.Lock()
        self._built_in: Dict[str, Profile] = {p.id: p for p in BUILT_IN_PROFILES}
        self._custom: Dict[str, Profile] = {}

        for profile in custom_profiles:
            if profile.id in self._built_in:
                log(f"Ignoring custom profile shadowing built-in '{profile.id}'", "WARN")
                continue
            self._custom[profile.id] = dataclasses.replace(profile, is_built_in=False)

    @classmethod
    def from_config(cls, config) -> "ProfileStore":
        """Seed a store with the custom profiles from a config snapshot."""
        valid = []
        for profile in config.custom_profiles:
            try:
                validate_profile(profile)
            except ProfileValidationError as e:
                log(f"Skipping invalid profile '{profile.id}': {e}", "WARN")
                continue
            valid.append(profile)
        return cls(valid)

    def list(self) -> List[Profile]:
        """All profiles, built-in first, then custom in insertion order."""
        with self._lock:
            profiles = list(self._built_in.values()) + list(self._custom.values())
            return [dataclasses.replace(p) for p in profiles]

    def custom_profiles(self) -> List[Profile]:
        """Only the user-defined profiles (what a settings writer would persist)."""
        with self._lock:
            return [dataclasses.replace(p) for p in self._custom.values()]

    def get(self, profile_id: str) -> Profile:
        """
        Look up a profile by id.

        Raises:
            ProfileNotFoundError: If no profile has this id
        """
        with self._lock:
            profile = self._built_in.get(profile_id) or self._custom.get(profile_id)
            if profile is None:
                raise ProfileNotFoundError(profile_id)
            return dataclasses.replace(profile)

    def passthrough(self) -> Profile:
        return dataclasses.replace(self._built_in[PASSTHROUGH_PROFILE_ID])

    def upsert(self, profile: Profile) -> Profile:
        """
        Insert or replace a custom profile, keyed by id.

        Returns:
            The stored copy, with timestamps filled in

        Raises:
            ProtectedProfileError: If the id belongs to a built-in profile
            ProfileValidationError: If any field is invalid
        """
        if profile.id in BUILT_IN_IDS:
            raise ProtectedProfileError(f"Cannot modify built-in profile: {profile.id}")

        validate_profile(profile)

        with self._lock:
            existing = self._custom.get(profile.id)
            now = _now()
            created_at = existing.created_at if existing and existing.created_at else (profile.created_at or now)
            stored = dataclasses.replace(
                profile,
                is_built_in=False,
                created_at=created_at,
                updated_at=now,
            )
            self._custom[profile.id] = stored
            action = "updated" if existing else "created"

        log(f"Profile {action}: {stored.name} ({stored.id})", "OK")
        return dataclasses.replace(stored)

    def delete(self, profile_id: str, active_profile_id: Optional[str] = None) -> bool:
        """
        Remove a custom profile.

        Args:
            profile_id: Id of the profile to delete
            active_profile_id: The caller's current selection, if any

        Returns:
            True when the deleted profile was the active one and the caller
            must reset its selection to the passthrough profile.

        Raises:
            ProtectedProfileError: If the id belongs to a built-in profile
            ProfileNotFoundError: If no custom profile has this id
        """
        if profile_id in BUILT_IN_IDS:
            raise ProtectedProfileError(f"Cannot delete built-in profile: {profile_id}")

        with self._lock:
            if profile_id not in self._custom:
                raise ProfileNotFoundError(profile_id)
            removed = self._custom.pop(profile_id)

        log(f"Profile deleted: {removed.name} ({removed.id})", "OK")
        return active_profile_id == profile_id
