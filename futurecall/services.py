"""
Service wiring.

The Config is read once, on first use, and every service is built from it.
If the environment is incomplete the ConfigurationError is raised on every
request until the process restarts.

Python 3.9 compatible - uses typing.Optional
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .call_service import CallInitiator
from .config import Config, load_config
from .openai_service import OpenAIService
from .pipeline import ReplyPipeline
from .profile_service import ProfileService
from .speech_service import SpeechService
from .storage_service import StorageService
from .twilio_service import TwilioService

logger = logging.getLogger(__name__)


@dataclass
class Services:
    config: Config
    initiator: CallInitiator
    pipeline: ReplyPipeline

    async def close(self) -> None:
        await self.pipeline.profiles.close()
        await self.pipeline.generator.close()
        await self.pipeline.speech.close()
        await self.pipeline.storage.close()


def build_services(config: Config) -> Services:
    """Construct every collaborator from one Config."""
    twilio = TwilioService(config)
    pipeline = ReplyPipeline(
        profiles=ProfileService(config),
        generator=OpenAIService(config),
        speech=SpeechService(config),
        storage=StorageService(config),
    )
    return Services(
        config=config,
        initiator=CallInitiator(twilio, jwt_verification_key=config.jwt_verification_key),
        pipeline=pipeline,
    )


# Singleton instance (created lazily)
_services: Optional[Services] = None


def get_services() -> Services:
    """Get or create the Services singleton.

    Raises:
        ConfigurationError: required secrets missing
    """
    global _services
    if _services is None:
        _services = build_services(load_config())
        logger.info("Call handler services initialized")
    return _services


def set_services(services: Optional[Services]) -> None:
    """Replace the singleton (None forces a rebuild on next use)."""
    global _services
    _services = services


async def close_services() -> None:
    global _services
    if _services is not None:
        await _services.close()
        _services = None
