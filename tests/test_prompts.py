# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Unit tests for prompt formatting.
"""

from whisper_refine.backends.prompts import Prompt, format_prompt
from whisper_refine.profiles import Profile


def _profile(template: str, system: str = "Be helpful.") -> Profile:
    return Profile(
        id="t",
        name="T",
        description="d",
        system_prompt=system,
        user_prompt_template=template,
    )


class TestFormatPrompt:
    def test_single_token_replaced(self):
        prompt = format_prompt(_profile("Process: {transcription}"), "hello world")
        assert prompt.user == "Process: hello world"
        assert prompt.system == "Be helpful."

    def test_every_occurrence_replaced(self):
        prompt = format_prompt(_profile("A {transcription} B {transcription} C"), "x")
        assert prompt.user == "A x B x C"

    def test_rest_of_template_untouched(self):
        template = "Keep {braces} and {text} and %s as-is:\n\n{transcription}"
        prompt = format_prompt(_profile(template), "raw")
        assert prompt.user == "Keep {braces} and {text} and %s as-is:\n\nraw"

    def test_substitution_not_recursive(self):
        raw = "say {transcription} literally"
        prompt = format_prompt(_profile("Q: {transcription}"), raw)
        assert prompt.user == "Q: say {transcription} literally"

    def test_deterministic(self):
        profile = _profile("Notes:\n{transcription}")
        assert format_prompt(profile, "same") == format_prompt(profile, "same")

    def test_system_prompt_not_substituted(self):
        prompt = format_prompt(_profile("{transcription}", system="About {transcription}"), "x")
        assert prompt.system == "About {transcription}"


class TestPromptForms:
    def test_combined_with_system(self):
        assert Prompt(system="S", user="U").combined() == "System: S\n\nUser: U"

    def test_combined_without_system(self):
        assert Prompt(system="", user="U").combined() == "U"

    def test_messages_with_system(self):
        assert Prompt(system="S", user="U").messages() == [
            {"role": "system", "content": "S"},
            {"role": "user", "content": "U"},
        ]

    def test_messages_without_system(self):
        assert Prompt(system="", user="U").messages() == [{"role": "user", "content": "U"}]
