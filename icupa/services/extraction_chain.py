from __future__ import annotations

import logging
from typing import Any

from icupa.app.domain.models import ChainResult, ExtractedItem
from icupa.services.json_items import parse_item_array
from icupa.services.llm_clients import ChatModel, load_system_prompt

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONTENT_CHARS = 12000

STAGE_EXTRACT = "extract"
STAGE_CLEAN = "clean"
STAGE_ENHANCE = "enhance"

STAGE_PROMPT_FILES = {
    STAGE_EXTRACT: "EXTRACT_PROMPT.txt",
    STAGE_CLEAN: "CLEAN_PROMPT.txt",
    STAGE_ENHANCE: "ENHANCE_PROMPT.txt",
}


class MenuExtractionChain:
    """
    Extract → clean → enhance, each stage on its own model.

    A stage whose reply cannot be parsed (or whose provider fails) falls
    back to the previous stage's items: extraction falls back to an empty
    list, clean and enhance pass their input through unchanged. Every
    degraded stage is logged and reported on the result.
    """

    def __init__(
        self,
        extractor: ChatModel,
        cleaner: ChatModel,
        enhancer: ChatModel,
        max_content_chars: int = DEFAULT_MAX_CONTENT_CHARS,
    ) -> None:
        self.extractor = extractor
        self.cleaner = cleaner
        self.enhancer = enhancer
        self.max_content_chars = max_content_chars
        self._prompts = {stage: load_system_prompt(name) for stage, name in STAGE_PROMPT_FILES.items()}

    def run(self, content: str, source_url: str | None = None) -> ChainResult:
        result = ChainResult(items=[])

        if not content or not content.strip():
            logger.info("Empty content for %s, skipping extraction", source_url)
            return result

        extracted = self._run_stage(
            STAGE_EXTRACT,
            self.extractor,
            content[: self.max_content_chars],
            fallback=[],
            result=result,
        )
        if not extracted:
            return self._finish(result, extracted)

        cleaned = self._run_stage(STAGE_CLEAN, self.cleaner, extracted, fallback=extracted, result=result)
        enhanced = self._run_stage(STAGE_ENHANCE, self.enhancer, cleaned, fallback=cleaned, result=result)
        return self._finish(result, enhanced)

    def _run_stage(
        self,
        stage: str,
        model: ChatModel,
        payload: str | list[dict[str, Any]],
        fallback: list[dict[str, Any]],
        result: ChainResult,
    ) -> list[dict[str, Any]]:
        result.models_used.append(model.name)

        try:
            reply = model.complete(self._prompts[stage], payload)
        except Exception as err:
            logger.warning("Stage %s degraded: model=%s error=%s", stage, model.name, err)
            result.degraded_stages.append(stage)
            return fallback

        items = parse_item_array(reply)
        if items is None:
            logger.warning(
                "Stage %s degraded: model=%s returned malformed JSON (%d chars)",
                stage,
                model.name,
                len(reply or ""),
            )
            result.degraded_stages.append(stage)
            return fallback

        logger.debug("Stage %s ok: model=%s items=%d", stage, model.name, len(items))
        return items

    @staticmethod
    def _finish(result: ChainResult, items: list[dict[str, Any]]) -> ChainResult:
        result.items = [ExtractedItem.from_dict(item) for item in items]
        return result
