"""Shared fixtures: a complete Config and collaborator test doubles."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from futurecall.call_service import CallInitiator
from futurecall.config import Config
from futurecall.main import app
from futurecall.models import AudioArtifact, GoalSummary, UserContext
from futurecall.pipeline import ReplyPipeline
from futurecall.services import Services, set_services

TEST_AUTH_TOKEN = "test-twilio-auth-token"
TEST_AUDIO_URL = (
    "https://project.supabase.co/storage/v1/object/public/"
    "twilio-audio-cache/temp/tts-req_1-1700000000000.mp3"
)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def config() -> Config:
    return Config(
        twilio_account_sid="ACtest",
        twilio_auth_token=TEST_AUTH_TOKEN,
        twilio_from_number="+15550001111",
        supabase_url="https://project.supabase.co",
        supabase_service_role_key="service-role-key",
        openai_api_key="sk-test",
        elevenlabs_api_key="xi-test",
    )


@pytest.fixture
def twilio():
    """TwilioService double; start_call returns a fixed SID."""
    service = MagicMock()
    service.start_call = MagicMock(return_value="CA0123456789abcdef")
    return service


@pytest.fixture
def profiles():
    service = MagicMock()
    service.get_user_context = AsyncMock(
        return_value=UserContext(
            user_id="u1",
            voice_preference="voice-abc",
            goals=[GoalSummary(title="Run a marathon", category_name="Health")],
        )
    )
    service.close = AsyncMock()
    return service


@pytest.fixture
def generator():
    service = MagicMock()
    service.generate_reply = AsyncMock(return_value="Hey, it's you from the future.")
    service.close = AsyncMock()
    return service


@pytest.fixture
def speech():
    service = MagicMock()
    service.synthesize = AsyncMock(return_value=b"ID3-fake-mp3")
    service.close = AsyncMock()
    return service


@pytest.fixture
def storage():
    service = MagicMock()
    service.save_audio = AsyncMock(
        return_value=AudioArtifact(
            audio=b"ID3-fake-mp3",
            storage_key="temp/tts-req_1-1700000000000.mp3",
            public_url=TEST_AUDIO_URL,
        )
    )
    service.close = AsyncMock()
    return service


@pytest.fixture
def pipeline(profiles, generator, speech, storage) -> ReplyPipeline:
    return ReplyPipeline(profiles=profiles, generator=generator, speech=speech, storage=storage)


@pytest.fixture
def services(config, twilio, pipeline):
    """Install test doubles as the app's services for the duration of a test."""
    installed = Services(
        config=config,
        initiator=CallInitiator(twilio),
        pipeline=pipeline,
    )
    set_services(installed)
    yield installed
    set_services(None)


@pytest.fixture
async def client():
    """Create async test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
