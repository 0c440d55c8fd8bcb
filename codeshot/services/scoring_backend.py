"""
OpenAI评分后端 - chat completions in JSON mode
"""
from typing import Optional

import openai

from codeshot.core.config import Settings, get_settings
from codeshot.core.errors import ScoringError

SYSTEM_PROMPT = "You evaluate source code excerpts and answer with a single JSON object."


class OpenAIScoringBackend:
    """OpenAI-compatible ``ScoringBackend``; retries live in the scorer."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[openai.AsyncOpenAI] = None):
        self.settings = settings or get_settings()
        self.client = client or openai.AsyncOpenAI(
            api_key=self.settings.openai_api_key,
            base_url=self.settings.openai_base_url,
            timeout=self.settings.scoring_timeout,
            max_retries=0,
        )
        self.model = self.settings.scoring_model

    async def score(self, prompt: str) -> str:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            response_format={"type": "json_object"},
            temperature=0.2,
        )
        if not response.choices:
            raise ScoringError("backend returned no choices")
        return response.choices[0].message.content or ""

    async def close(self) -> None:
        await self.client.close()
