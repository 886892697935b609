import asyncio
from typing import Optional

from supportdesk.config import TicketCategory
from supportdesk.triage.application import IClassifier
from supportdesk.triage.domain import ClassificationResult


class StubClassifier(IClassifier):
    def __init__(
        self,
        confidence: float = 0.9,
        category: TicketCategory = TicketCategory.BILLING,
        error: Optional[Exception] = None,
        delay: float = 0.0,
        draft_reply: str = "Your refund has been issued.",
    ):
        self.confidence = confidence
        self.category = category
        self.error = error
        self.delay = delay
        self.draft_reply = draft_reply
        self.calls = 0

    async def classify(self, title: str, description: str) -> ClassificationResult:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return ClassificationResult(
            predicted_category=self.category,
            draft_reply=self.draft_reply,
            confidence=self.confidence,
            model_used="stub",
        )
