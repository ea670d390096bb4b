"""
Review Oracle - AI code review through the OpenAI chat completions API
"""
from typing import Optional

from openai import AsyncOpenAI, OpenAIError

from constants import OPENAI_API_KEY, OPENAI_BASE_URL, REVIEW_MODEL
from logging_config import get_logger

logger = get_logger(__name__)

REVIEW_SYSTEM_PROMPT = """You are an experienced senior software engineer doing a code review.
Review the code you are given and reply in Markdown with:
- a short summary of what the code does
- bugs, edge cases and security problems, most severe first
- readability and performance improvements
- a corrected or improved version of the code when changes are worth making
Be concise and concrete. Do not invent context that is not in the code."""


class ReviewError(Exception):
    """Raised when a review cannot be produced."""


class ReviewOracle:
    """Turns a piece of source code into review text."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, base_url: Optional[str] = None):
        self.api_key = api_key or OPENAI_API_KEY
        self.model = model or REVIEW_MODEL
        self.base_url = base_url or OPENAI_BASE_URL
        self._client: Optional[AsyncOpenAI] = None

    def _get_client(self) -> AsyncOpenAI:
        if not self.api_key:
            raise ReviewError("OpenAI API key missing")
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)
        return self._client

    async def review(self, code: str) -> str:
        client = self._get_client()
        logger.debug(f"Requesting review of {len(code)} chars from model {self.model}")
        try:
            response = await client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": REVIEW_SYSTEM_PROMPT},
                    {"role": "user", "content": code},
                ],
            )
        except OpenAIError as e:
            raise ReviewError(f"OpenAI request failed: {e}") from e

        text = response.choices[0].message.content if response.choices else None
        if not text:
            raise ReviewError("OpenAI returned an empty review")
        return text


review_oracle = ReviewOracle()
