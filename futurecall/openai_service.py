"""
OpenAI service - writes what the user's future self says next.

One chat completion per turn. The persona, the user's goals and the turn
instruction go in; a short spoken reply comes out. Failures are raised as a
generation-stage UpstreamError and are never retried.

Python 3.9 compatible - uses typing.Optional
"""

import logging
from typing import Optional

from openai import AsyncOpenAI, OpenAIError

from .config import Config
from .errors import UpstreamError

logger = logging.getLogger(__name__)

FUTURE_SELF_SYSTEM_PROMPT = """You are the user's future self, calling them on the phone from a few years ahead.
You have already achieved the goals they are working on today.
Your job is to motivate them and keep them accountable to those goals.
Speak in the first person, warmly and honestly.
Refer to their specific goals, motivations, deadlines and obstacles.
This is a spoken phone call: keep it to 2-4 short sentences and end with one question.
Never mention AI, systems, or prompts."""

MAX_TOKENS = 200
TEMPERATURE = 0.7
PRESENCE_PENALTY = 0.1
FREQUENCY_PENALTY = 0.1


class OpenAIService:
    """Generates the persona's reply for one turn."""

    def __init__(self, config: Config, client: Optional[AsyncOpenAI] = None):
        self.client = client or AsyncOpenAI(api_key=config.openai_api_key)
        self.model = config.openai_model
        logger.info(f"OpenAI service configured with model: {self.model}")

    async def close(self):
        await self.client.close()

    async def generate_reply(
        self,
        user_id: str,
        instruction: str,
        goals_text: str,
        request_id: str = "unknown",
    ) -> str:
        """Generate the next thing the persona says.

        Args:
            user_id: User the call belongs to (for logging)
            instruction: Turn instruction (opening greeting or reply to speech)
            goals_text: Formatted goal block from the profile service
            request_id: Request id for log correlation

        Returns:
            Reply text, stripped

        Raises:
            UpstreamError: API failure or empty completion
        """
        user_message = f"""Here's what I'm currently working on:

{goals_text}

{instruction}"""

        logger.info(
            f"Generating reply: requestId={request_id} userId={user_id} "
            f"model={self.model} instructionLength={len(instruction)}"
        )

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": FUTURE_SELF_SYSTEM_PROMPT},
                    {"role": "user", "content": user_message},
                ],
                max_tokens=MAX_TOKENS,
                temperature=TEMPERATURE,
                presence_penalty=PRESENCE_PENALTY,
                frequency_penalty=FREQUENCY_PENALTY,
            )
        except OpenAIError as e:
            logger.error(f"OpenAI API error: requestId={request_id} error={e}")
            raise UpstreamError("generation", f"OpenAI API error: {e}")

        if not response.choices:
            raise UpstreamError("generation", "No completion choices returned from OpenAI")

        content = response.choices[0].message.content
        message = (content or "").strip()
        if not message:
            raise UpstreamError("generation", "Empty message returned from OpenAI")

        usage = getattr(response, "usage", None)
        logger.info(
            f"Reply generated: requestId={request_id} messageLength={len(message)} "
            f"tokensUsed={getattr(usage, 'total_tokens', 0) if usage else 0}"
        )
        return message
