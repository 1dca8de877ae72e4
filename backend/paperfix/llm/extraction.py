"""
Structured Extraction Client
════════════════════════════

  text + language
       │
       ▼
  attempt 1: system prompt (schema) + truncated text      temperature 0.2
       │   check_model_output() → ValidExtraction ─────────────► result
       │                        → ParseFailure(detail)
       ▼
  attempt 2: repair prompt (detail + invalid output)      temperature 0.0
       │   check_model_output() → ValidExtraction ─────────────► result
       │                        → ParseFailure
       ▼
  ExtractionValidationError   (never a third request)

Transport failures (ServiceTransportError) propagate from either attempt
unchanged; they are not repairable.
"""

from __future__ import annotations

import logging

from paperfix.core.config import settings
from paperfix.core.exceptions import ExtractionValidationError
from paperfix.llm.gateway import LLMGateway
from paperfix.llm import prompts
from paperfix.schemas.extraction import ExtractionResult, ParseFailure, check_model_output

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 2


class StructuredExtractionClient:
    """
    Usage:
        client = StructuredExtractionClient()
        result = await client.extract(text, language="nl")
    """

    def __init__(
        self,
        gateway:           LLMGateway | None = None,
        max_input_chars:   int | None        = None,
        temperature:       float | None      = None,
        repair_temperature: float | None     = None,
    ) -> None:
        self._gateway = gateway or LLMGateway()
        self._max_input_chars = max_input_chars or settings.llm_max_input_chars
        self._temperature = (
            temperature if temperature is not None else settings.llm_temperature
        )
        self._repair_temperature = (
            repair_temperature if repair_temperature is not None
            else settings.llm_repair_temperature
        )

    async def extract(self, text: str, language: str | None = None) -> ExtractionResult:
        """
        Raises:
            ExtractionValidationError: both attempts failed parse/validation.
            ServiceTransportError: the extraction service could not be reached.
        """
        language = prompts.normalize_language(language)
        first_failure: ParseFailure | None = None
        last_failure:  ParseFailure | None = None
        last_output = ""

        for attempt in range(1, MAX_ATTEMPTS + 1):
            if attempt == 1:
                messages = LLMGateway.build_messages(
                    prompts.build_system_prompt(language),
                    prompts.build_user_prompt(
                        prompts.truncate_text(text, self._max_input_chars)
                    ),
                )
                temperature = self._temperature
            else:
                messages = LLMGateway.build_messages(
                    prompts.REPAIR_SYSTEM_PROMPT,
                    prompts.build_repair_prompt(last_failure.detail, last_output),
                )
                temperature = self._repair_temperature

            response = await self._gateway.complete(messages, temperature=temperature)
            last_output = response.content

            outcome = check_model_output(last_output)
            if outcome.ok:
                if attempt > 1:
                    logger.info("Extraction repaired | attempt=%d", attempt)
                return outcome.result

            logger.warning(
                "Extraction invalid | attempt=%d stage=%s detail=%s",
                attempt, outcome.stage, outcome.detail,
            )
            last_failure = outcome
            if first_failure is None:
                first_failure = outcome

        raise ExtractionValidationError(
            last_failure.detail,
            original_detail=first_failure.detail,
            raw_output=last_output,
        )
