from __future__ import annotations

from abc import ABC, abstractmethod

from clinicbook.domain.entities.intent import ExtractionResult
from clinicbook.domain.entities.message import Message


class IntentExtractorPort(ABC):
    @abstractmethod
    def extract_intent(self, history: list[Message], context: dict[str, str]) -> ExtractionResult:
        """
        Turn a conversation into a reply plus a structured intent.

        Requirements:
        - `history` is ordered oldest to newest and ends with the latest USER message
        - Always returns a reply text (may be empty when the intent speaks for itself)
        - Field values are returned as raw strings; callers validate them
        - Must honour a bounded timeout

        Raises:
            LLMUpstreamError: provider unreachable, timed out or failed
            LLMContractError: provider answered with an unusable payload
        """
        raise NotImplementedError
