"""
ElevenLabs text-to-speech.

Python 3.9 compatible - uses typing.Optional
"""

import logging
from typing import Optional

import httpx

from .config import Config
from .errors import UpstreamError

logger = logging.getLogger(__name__)

ELEVENLABS_BASE_URL = "https://api.elevenlabs.io"
VOICE_STABILITY = 0.5
VOICE_SIMILARITY_BOOST = 0.75


class SpeechService:
    """Turns reply text into MP3 bytes in the user's chosen voice."""

    def __init__(
        self,
        config: Config,
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: str = ELEVENLABS_BASE_URL,
    ):
        self.api_key = config.elevenlabs_api_key
        self.model_id = config.elevenlabs_model_id
        self.base_url = base_url.rstrip("/")
        self.http_client = http_client or httpx.AsyncClient(timeout=60.0)

    async def close(self):
        await self.http_client.aclose()

    async def synthesize(self, text: str, voice_id: str, request_id: str = "unknown") -> bytes:
        """Synthesize speech.

        Raises:
            UpstreamError: transport failure, non-2xx status, or empty audio
        """
        logger.info(
            f"Synthesizing speech: requestId={request_id} textLength={len(text)} voiceId={voice_id}"
        )

        try:
            response = await self.http_client.post(
                f"{self.base_url}/v1/text-to-speech/{voice_id}",
                headers={
                    "Accept": "audio/mpeg",
                    "Content-Type": "application/json",
                    "xi-api-key": self.api_key,
                },
                json={
                    "text": text,
                    "model_id": self.model_id,
                    "voice_settings": {
                        "stability": VOICE_STABILITY,
                        "similarity_boost": VOICE_SIMILARITY_BOOST,
                    },
                },
            )
        except httpx.HTTPError as e:
            logger.error(f"ElevenLabs request failed: requestId={request_id} error={e}")
            raise UpstreamError("synthesis", f"ElevenLabs TTS failed: {e}")

        if response.status_code >= 400:
            logger.error(
                f"ElevenLabs API error: requestId={request_id} "
                f"status={response.status_code} body={response.text[:500]}"
            )
            raise UpstreamError(
                "synthesis", f"ElevenLabs API error ({response.status_code}): {response.text}"
            )

        audio = response.content
        if not audio:
            raise UpstreamError("synthesis", "ElevenLabs returned no audio")

        logger.info(f"Speech synthesized: requestId={request_id} audioSize={len(audio)}")
        return audio
