"""
Triage External Service Adapters
==================================

Classifier implementations behind the IClassifier port.

- LLMClassifier: prompts an OpenAI-compatible model and parses its JSON
- StaticClassifier: deterministic keyword classifier, no external calls
"""

import json
from typing import Dict, Optional, Sequence

from supportdesk.config import VALID_CATEGORIES, TicketCategory
from supportdesk.core import ClassifierUnavailableException, LLMException
from supportdesk.infrastructure.llm import ILLMClient
from supportdesk.triage.application import IClassifier
from supportdesk.triage.domain import ClassificationPromptBuilder, ClassificationResult


def _extract_json(text: str) -> str:
    """Strip markdown code fences models like to add around JSON."""
    if "```json" in text:
        return text.split("```json")[1].split("```")[0].strip()
    if "```" in text:
        return text.split("```")[1].split("```")[0].strip()
    return text.strip()


class LLMClassifier(IClassifier):
    """
    Classifier backed by a chat completion model.

    Implements the triage IClassifier port using the infrastructure
    ILLMClient.
    """

    def __init__(
        self,
        llm_client: ILLMClient,
        temperature: float = 0.2,
        max_tokens: int = 600
    ):
        self._llm = llm_client
        self._temperature = temperature
        self._max_tokens = max_tokens

    async def classify(self, title: str, description: str) -> ClassificationResult:
        """
        Classify a ticket.

        Raises:
            ClassifierUnavailableException: LLM call failed or returned an
                unusable payload
        """
        messages = [
            {"role": "system", "content": ClassificationPromptBuilder.get_system_prompt()},
            {"role": "user", "content": ClassificationPromptBuilder.build_prompt(title, description)},
        ]

        try:
            response = await self._llm.chat_completion(
                messages=messages,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                operation="classification"
            )
        except LLMException as e:
            raise ClassifierUnavailableException(e.message, e.details) from e

        try:
            data = json.loads(_extract_json(response.content))
            category = str(data.get("category", TicketCategory.OTHER.value)).lower()
            draft_reply = str(data.get("draft_reply") or "").strip()
            if not draft_reply:
                raise ValueError("draft_reply is empty")
            return ClassificationResult(
                predicted_category=(
                    TicketCategory(category)
                    if category in VALID_CATEGORIES
                    else TicketCategory.OTHER
                ),
                draft_reply=draft_reply,
                confidence=float(data["confidence"]),
                model_used=response.model,
                latency_ms=response.latency_ms,
            )
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
            raise ClassifierUnavailableException(
                f"Failed to parse classification response: {e}",
                {"model": response.model}
            ) from e


_DEFAULT_KEYWORDS: Dict[TicketCategory, Sequence[str]] = {
    TicketCategory.BILLING: ("invoice", "refund", "charge", "billing", "payment", "subscription"),
    TicketCategory.SHIPPING: ("shipping", "delivery", "tracking", "package", "shipment", "courier"),
    TicketCategory.TECH: ("error", "bug", "crash", "login", "password", "install", "api"),
}


class StaticClassifier(IClassifier):
    """
    Keyword classifier with fixed confidences.

    Useful for local runs without an API key: matched tickets get
    `match_confidence`, everything else `default_confidence`.
    """

    def __init__(
        self,
        match_confidence: float = 0.9,
        default_confidence: float = 0.3,
        keywords: Optional[Dict[TicketCategory, Sequence[str]]] = None,
        draft_reply: str = "Thanks for contacting support. Here is what we found for your request."
    ):
        self._match_confidence = match_confidence
        self._default_confidence = default_confidence
        self._keywords = keywords or _DEFAULT_KEYWORDS
        self._draft_reply = draft_reply

    async def classify(self, title: str, description: str) -> ClassificationResult:
        text = f"{title} {description}".lower()
        for category, words in self._keywords.items():
            if any(word in text for word in words):
                return ClassificationResult(
                    predicted_category=category,
                    draft_reply=self._draft_reply,
                    confidence=self._match_confidence,
                    model_used="static",
                )
        return ClassificationResult(
            predicted_category=TicketCategory.OTHER,
            draft_reply=self._draft_reply,
            confidence=self._default_confidence,
            model_used="static",
        )
