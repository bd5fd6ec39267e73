from __future__ import annotations

import logging

from icupa.services.llm_clients import ChatModel, load_system_prompt

logger = logging.getLogger(__name__)

IMAGE_PROMPT_SYSTEM_FILE = "IMAGE_PROMPT_SYSTEM.txt"


def template_prompt(name: str, description: str | None = None) -> str:
    subject = f"{name}: {description}" if description else name
    return (
        f"Professional food photography of {subject}. High-quality restaurant menu photo, "
        "appetizing presentation, natural lighting, shallow depth of field."
    )


class ImagePromptBuilder:
    """Text-to-image prompt for a dish, refined by a chat model when one is available."""

    def __init__(self, chat_model: ChatModel | None = None) -> None:
        self.chat_model = chat_model
        self._system_prompt = load_system_prompt(IMAGE_PROMPT_SYSTEM_FILE) if chat_model else ""

    def build(self, name: str, description: str | None = None) -> str:
        fallback = template_prompt(name, description)
        if self.chat_model is None:
            return fallback

        user_prompt = (
            f"Dish name: {name}\n"
            f"Description: {description or 'N/A'}\n"
            "Generate a single, detailed DALL·E 3 prompt for a square menu photo."
        )

        try:
            candidate = self.chat_model.complete(self._system_prompt, user_prompt)
        except Exception as err:
            logger.warning("Prompt refinement failed for %r, using template: %s", name, err)
            return fallback

        candidate = (candidate or "").strip()
        return candidate or fallback
