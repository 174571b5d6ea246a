"""
Storage Service - publishes synthesized audio so Twilio can <Play> it.

Each turn writes a new object under temp/ in the audio bucket. Keys embed the
request id and a millisecond timestamp, so two writes never share a key.
Objects are never updated or deleted here.

Python 3.9 compatible - uses typing.Callable, typing.Optional
"""

import logging
import time
from typing import Callable, Optional

import httpx

from .config import Config
from .errors import UpstreamError
from .models import AudioArtifact

logger = logging.getLogger(__name__)

AUDIO_CONTENT_TYPE = "audio/mpeg"
AUDIO_PREFIX = "temp"


def _now_ms() -> int:
    return int(time.time() * 1000)


def audio_key(request_id: str, timestamp_ms: int) -> str:
    return f"{AUDIO_PREFIX}/tts-{request_id}-{timestamp_ms}.mp3"


class StorageService:
    """Uploads audio to Supabase Storage and returns its public URL."""

    def __init__(
        self,
        config: Config,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], int] = _now_ms,
    ):
        self.storage_url = f"{config.supabase_url}/storage/v1"
        self.bucket = config.audio_bucket
        self._service_key = config.supabase_service_role_key
        self.http_client = http_client or httpx.AsyncClient(timeout=30.0)
        self._clock = clock

    async def close(self):
        await self.http_client.aclose()

    def public_url(self, key: str) -> str:
        return f"{self.storage_url}/object/public/{self.bucket}/{key}"

    async def save_audio(self, audio: bytes, request_id: str) -> AudioArtifact:
        """Upload one turn's audio.

        Raises:
            UpstreamError: upload failed (the audio is discarded)
        """
        key = audio_key(request_id, self._clock())
        logger.info(
            f"Uploading audio: requestId={request_id} bucket={self.bucket} "
            f"key={key} audioSize={len(audio)}"
        )

        try:
            response = await self.http_client.post(
                f"{self.storage_url}/object/{self.bucket}/{key}",
                content=audio,
                headers={
                    "apikey": self._service_key,
                    "Authorization": f"Bearer {self._service_key}",
                    "Content-Type": AUDIO_CONTENT_TYPE,
                    "x-upsert": "true",
                },
            )
        except httpx.HTTPError as e:
            logger.error(f"Audio upload failed: requestId={request_id} error={e}")
            raise UpstreamError("storage", f"Failed to upload audio to storage: {e}")

        if response.status_code >= 400:
            logger.error(
                f"Audio upload rejected: requestId={request_id} "
                f"status={response.status_code} body={response.text[:500]}"
            )
            raise UpstreamError(
                "storage",
                f"Failed to upload audio to storage: {_storage_message(response)}",
            )

        artifact = AudioArtifact(audio=audio, storage_key=key, public_url=self.public_url(key))
        logger.info(f"Audio published: requestId={request_id} url={artifact.public_url}")
        return artifact


def _storage_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or f"HTTP {response.status_code}")
    return f"HTTP {response.status_code}"
