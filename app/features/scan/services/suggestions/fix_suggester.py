from abc import ABC, abstractmethod
from typing import List, Optional

import openai
from openai import OpenAI

from app.features.scan.exceptions import SuggesterError, SuggesterQuotaError
from app.features.scan.schemas.scan import Violation
from app.platform.logger import get_logger

logger = get_logger(__name__)

AI_UNAVAILABLE_PLACEHOLDER = (
    "**AI Service Temporarily Unavailable**\n\n"
    "AI-powered fixes are temporarily unavailable due to a service error. "
    "Please refer to the help links in the violations table for guidance on "
    "fixing these accessibility issues."
)

AI_QUOTA_EXCEEDED_PLACEHOLDER = (
    "**AI Fix Quota Exceeded**\n\n"
    "AI-powered fix recommendations are currently unavailable because the AI "
    "provider quota has been exceeded. In the meantime, please refer to the "
    "help links in the violations table for manual fix guidance."
)

SYSTEM_PROMPT = (
    "You are an expert web accessibility engineer. Provide clear, actionable "
    "solutions with code examples for accessibility violations. Always include "
    "specific code snippets and explain why each fix helps users with disabilities."
)


class FixSuggester(ABC):
    @abstractmethod
    def suggest(self, violations: List[Violation]) -> str:
        """Remediation text for `violations`. Raise `SuggesterError` on provider failure."""


def build_fix_prompt(violations: List[Violation]) -> str:
    lines = "\n".join(
        f"- {v.rule_id}: {v.help_text or v.description} "
        f"(Impact: {v.impact}, affected elements: {v.affected_element_count})"
        for v in violations
    )
    return (
        "I have the following accessibility violations from an automated WCAG 2 A/AA scan:\n"
        f"{lines}\n\n"
        "For each violation, provide:\n"
        "1. A clear explanation of what's wrong\n"
        "2. Specific HTML/CSS/JavaScript code examples to fix it\n"
        "3. Why this fix improves accessibility\n\n"
        "Format your response in markdown with clear headings for each violation."
    )


class OpenAIFixSuggester(FixSuggester):
    """Remediation text from an OpenAI-compatible chat completions endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: Optional[str] = None,
        timeout: float = 60.0,
        client: Optional[OpenAI] = None,
    ):
        self.model = model
        self.client = client or OpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=1)

    def suggest(self, violations: List[Violation]) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_fix_prompt(violations)},
                ],
                temperature=0.2,
                max_tokens=2000,
            )
        except openai.RateLimitError as e:
            if _is_quota_error(e):
                raise SuggesterQuotaError(f"AI provider quota exceeded: {e}") from e
            raise SuggesterError(f"AI provider rate limited the request: {e}") from e
        except openai.OpenAIError as e:
            raise SuggesterError(f"AI provider call failed: {e}") from e

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise SuggesterError("AI provider returned an empty response")
        return content.strip()


def _is_quota_error(error: "openai.RateLimitError") -> bool:
    if getattr(error, "code", None) == "insufficient_quota":
        return True
    return "exceeded your current quota" in str(error)
