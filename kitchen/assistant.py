import logging
from typing import Any

import openai
from openai.types.chat import (
    ChatCompletionMessageParam,
    ChatCompletionSystemMessageParam,
    ChatCompletionUserMessageParam,
)

from kitchen.errors import InternalError, InvalidArgument
from kitchen.models import Recipe
from kitchen.prompts import ASSISTANT_PROMPT, RecipeQuestionPrompt


logger = logging.getLogger(__name__)


MAX_TOKENS = 500
DEFAULT_MODEL = "gpt-4o-mini"


class Assistant:
    """Answers questions about the recipe on screen."""

    def __init__(
        self,
        openai_client: openai.AsyncClient | None = None,
        *,
        model: str | None = None,
        max_tokens: int = MAX_TOKENS,
    ) -> None:
        self._openai_client = openai_client
        self._owns_client = openai_client is None
        self.model = DEFAULT_MODEL if model is None else model
        self.max_tokens = max_tokens

    @property
    def openai_client(self) -> openai.AsyncClient:
        # Built lazily so a missing OPENAI_API_KEY only bites on first question.
        if self._openai_client is None:
            self._openai_client = openai.AsyncClient()
        return self._openai_client

    async def close(self) -> None:
        # Only the client built here is ours to close.
        if self._owns_client and self._openai_client is not None:
            await self._openai_client.close()
            self._openai_client = None

    def messages(
        self, recipe: Recipe | dict[str, Any], question: str
    ) -> list[ChatCompletionMessageParam]:
        system_message: ChatCompletionSystemMessageParam = {
            "role": "system",
            "content": ASSISTANT_PROMPT,
        }
        user_message: ChatCompletionUserMessageParam = {
            "role": "user",
            "content": str(RecipeQuestionPrompt(recipe, question)),
        }
        return [system_message, user_message]

    async def ask(self, recipe: Recipe | dict[str, Any] | None, question: str | None) -> str:
        if not recipe or not question:
            raise InvalidArgument("Recipe data or question missing")
        if not isinstance(recipe, (Recipe, dict)) or not isinstance(question, str):
            raise InvalidArgument("Recipe should be an object and question a string")
        if not question.strip():
            raise InvalidArgument("Recipe data or question missing")

        title = recipe.title if isinstance(recipe, Recipe) else recipe.get("title")
        logger.info('Processing question: "%s" for recipe "%s"', question, title)

        try:
            resp = await self.openai_client.chat.completions.create(
                model=self.model,
                messages=self.messages(recipe, question),
                max_tokens=self.max_tokens,
            )
            ans = resp.choices[0].message.content or ""
        except Exception as e:
            logger.exception("Assistant request failed.")
            raise InternalError("Error processing your question") from e

        logger.info('Generated response for "%s": %s...', question, ans[:100])
        return ans
