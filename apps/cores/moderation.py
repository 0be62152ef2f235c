# apps/cores/moderation.py
import re
import json
import time
import logging
from dataclasses import dataclass
from typing import Iterable, Optional
from concurrent.futures import ThreadPoolExecutor

from django.conf import settings

from apps.cores.exceptions import DependencyFailure

logger = logging.getLogger(__name__)

# -------------------------------
# Config
# -------------------------------
AI_TIMEOUT_SECONDS = 12           # time to wait for a single AI request
AI_RETRIES = 2                    # total attempts = AI_RETRIES + 1
AI_RETRY_BACKOFF = 1.5
AI_MODEL_NAME = "gemini-2.5-flash"

DEFAULT_REJECTION_REASON = "Content does not comply with moderation rules."


@dataclass
class ModerationResult:
    is_appropriate: bool
    reason: Optional[str] = None


class ContentModerator:
    """Interface: check(text) -> ModerationResult."""

    def check(self, text: str) -> ModerationResult:
        raise NotImplementedError


class KeywordModerator(ContentModerator):
    """
    Rejects text containing any blocked term (whole-word, case-insensitive).
    """

    def __init__(self, blocked_terms: Optional[Iterable[str]] = None):
        if blocked_terms is None:
            blocked_terms = getattr(settings, "MODERATION_BLOCKED_TERMS", [])
        self.blocked_terms = [t.lower() for t in blocked_terms if t]

    def check(self, text: str) -> ModerationResult:
        lowered = (text or "").lower()
        for term in self.blocked_terms:
            if re.search(rf"\b{re.escape(term)}\b", lowered):
                return ModerationResult(
                    is_appropriate=False,
                    reason=f"The comment contains a forbidden term: '{term}'.",
                )
        return ModerationResult(is_appropriate=True)


# -------------------------------
# Gemini moderator (threaded + timeout + retries)
# -------------------------------
def _build_prompt(text: str) -> str:
    return f"""
You are a content moderator. Decide whether this evaluation comment is appropriate
and free of offensive, discriminatory or otherwise forbidden content.
Be flexible, but reject content that is genuinely offensive or inappropriate.

Answer ONLY with a JSON object of the form:
{{"isAppropriate": true|false, "reason": "<short reason when inappropriate>"}}

Comment to moderate: "{text}"
"""


def _parse_verdict(raw: str) -> ModerationResult:
    raw = re.sub(r"```(?:json)?", "", raw or "").strip()
    match = re.search(r"\{[\s\S]*\}", raw)
    if not match:
        raise ValueError(f"Unparseable moderation output: {raw[:200]!r}")
    data = json.loads(match.group(0))
    is_appropriate = bool(data.get("isAppropriate", True))
    reason = data.get("reason") or None
    if not is_appropriate and not reason:
        reason = DEFAULT_REJECTION_REASON
    return ModerationResult(is_appropriate=is_appropriate, reason=reason)


class GeminiModerator(ContentModerator):

    def __init__(self, api_key: Optional[str] = None, model_name: str = AI_MODEL_NAME):
        # AI client
        import google.generativeai as genai

        api_key = api_key or getattr(settings, "GOOGLE_API_KEY", None)
        if not api_key:
            raise ValueError("GOOGLE_API Key not found")
        genai.configure(api_key=api_key)
        self._genai = genai
        self.model_name = model_name

    def _call_ai_sync(self, prompt: str) -> str:
        """Synchronous call to Gemini. Kept small to run in thread."""
        model = self._genai.GenerativeModel(self.model_name)
        response = model.generate_content(
            prompt,
            generation_config=self._genai.types.GenerationConfig(
                max_output_tokens=200,
                temperature=0.0,
            ),
        )
        return response.text or ""

    def check(self, text: str) -> ModerationResult:
        prompt = _build_prompt(text)

        attempt = 0
        backoff = 1.0
        while True:
            attempt += 1
            try:
                with ThreadPoolExecutor(max_workers=1) as executor:
                    future = executor.submit(self._call_ai_sync, prompt)
                    raw = future.result(timeout=AI_TIMEOUT_SECONDS)
                return _parse_verdict(raw)
            except Exception as e:
                logger.warning("Moderation attempt %s failed: %s", attempt, e, exc_info=False)
                if attempt > AI_RETRIES:
                    raise DependencyFailure(
                        f"Moderation unavailable after {AI_RETRIES + 1} attempts."
                    ) from e
                time.sleep(backoff)
                backoff *= AI_RETRY_BACKOFF


def get_moderator() -> ContentModerator:
    backend = getattr(settings, "CONTENT_MODERATOR", "keyword")
    if backend == "gemini":
        try:
            return GeminiModerator()
        except ValueError:
            logger.error("GOOGLE_API not configured, falling back to keyword moderation")
    return KeywordModerator()
