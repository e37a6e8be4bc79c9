# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Prompt formatting shared by all backends.

A profile's user template gets the raw transcription substituted for every
{transcription} token. The system prompt is passed through untouched; each
backend decides whether it travels as a separate message or is folded into
a single prompt string.
"""

from dataclasses import dataclass
from typing import List

from ..profiles import SUBSTITUTION_TOKEN, Profile


@dataclass(frozen=True)
class Prompt:
    """System instruction plus the formatted user prompt."""
    system: str
    user: str

    def combined(self) -> str:
        """Single-string form for completion-style APIs."""
        if not self.system:
            return self.user
        return f"System: {self.system}\n\nUser: {self.user}"

    def messages(self) -> List[dict]:
        """Chat-style message list (system message omitted when empty)."""
        messages = []
        if self.system:
            messages.append({"role": "system", "content": self.system})
        messages.append({"role": "user", "content": self.user})
        return messages


def format_prompt(profile: Profile, raw_text: str) -> Prompt:
    """
    Build the prompt for a profile.

    str.replace scans the template once, so text inserted for one token is
    never searched for further tokens.
    """
    user = profile.user_prompt_template.replace(SUBSTITUTION_TOKEN, raw_text)
    return Prompt(system=profile.system_prompt, user=user)
