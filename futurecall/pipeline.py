"""
Reply pipeline - turns one classified webhook into TwiML.

Stages run strictly in order, each filling in one field of the TurnState:

1. profile     - voice preference + recent goals (database)
2. instruction - opening greeting or reply-to-speech instruction (pure)
3. generation  - persona reply text (OpenAI)
4. synthesis   - reply audio (ElevenLabs)
5. storage     - publish audio, get a public URL (Supabase Storage)
6. markup      - TwiML pointing back at the webhook

A stage that fails raises; the remaining stages never run. Nothing is
retried and nothing already produced (e.g. synthesized audio) is kept.

Python 3.9 compatible - uses typing.Awaitable, typing.Callable, typing.List,
typing.Optional, typing.Tuple
"""

import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Tuple

from .errors import CallHandlerError
from .models import AudioArtifact, ContinuationTurn, TurnContext, UserContext
from .openai_service import OpenAIService
from .profile_service import ProfileService, format_goals_for_prompt
from .speech_service import SpeechService
from .storage_service import StorageService
from .turns import build_instruction
from .twiml import build_markup

logger = logging.getLogger(__name__)


@dataclass
class TurnState:
    """Everything one turn has produced so far."""
    user_id: str
    context: TurnContext
    next_callback_url: str
    request_id: str

    user_context: Optional[UserContext] = None
    instruction: Optional[str] = None
    reply_text: Optional[str] = None
    audio: Optional[bytes] = None
    artifact: Optional[AudioArtifact] = None
    markup: Optional[str] = None


Stage = Callable[[TurnState], Awaitable[None]]


class ReplyPipeline:
    """Runs the per-turn stages against the collaborator services."""

    def __init__(
        self,
        profiles: ProfileService,
        generator: OpenAIService,
        speech: SpeechService,
        storage: StorageService,
    ):
        self.profiles = profiles
        self.generator = generator
        self.speech = speech
        self.storage = storage

    @property
    def stages(self) -> List[Tuple[str, Stage]]:
        return [
            ("profile", self._load_profile),
            ("instruction", self._build_instruction),
            ("generation", self._generate_reply),
            ("synthesis", self._synthesize),
            ("storage", self._store_audio),
            ("markup", self._render_markup),
        ]

    async def build_turn_response(
        self,
        user_id: str,
        context: TurnContext,
        next_callback_url: str,
        request_id: str = "unknown",
    ) -> str:
        """Run every stage and return the TwiML for this turn.

        Raises:
            CallHandlerError: from the first stage that fails
        """
        state = TurnState(
            user_id=user_id,
            context=context,
            next_callback_url=next_callback_url,
            request_id=request_id,
        )
        turn_started = time.monotonic()

        for name, stage in self.stages:
            started = time.monotonic()
            try:
                await stage(state)
            except CallHandlerError as e:
                logger.error(
                    f"Turn aborted: requestId={request_id} stage={name} "
                    f"errorType={type(e).__name__} error={e.message}"
                )
                raise
            logger.debug(
                f"Stage complete: requestId={request_id} stage={name} "
                f"elapsedMs={int((time.monotonic() - started) * 1000)}"
            )

        logger.info(
            f"Turn response ready: requestId={request_id} userId={user_id} "
            f"turn={'continuation' if isinstance(context, ContinuationTurn) else 'initial'} "
            f"elapsedMs={int((time.monotonic() - turn_started) * 1000)} "
            f"twimlLength={len(state.markup or '')}"
        )
        return state.markup or ""

    async def _load_profile(self, state: TurnState) -> None:
        state.user_context = await self.profiles.get_user_context(state.user_id, state.request_id)

    async def _build_instruction(self, state: TurnState) -> None:
        state.instruction = build_instruction(state.context)

    async def _generate_reply(self, state: TurnState) -> None:
        state.reply_text = await self.generator.generate_reply(
            state.user_id,
            state.instruction,
            format_goals_for_prompt(state.user_context.goals),
            request_id=state.request_id,
        )

    async def _synthesize(self, state: TurnState) -> None:
        state.audio = await self.speech.synthesize(
            state.reply_text,
            state.user_context.voice_preference,
            request_id=state.request_id,
        )

    async def _store_audio(self, state: TurnState) -> None:
        state.artifact = await self.storage.save_audio(state.audio, state.request_id)

    async def _render_markup(self, state: TurnState) -> None:
        state.markup = build_markup(state.artifact.public_url, state.next_callback_url)
