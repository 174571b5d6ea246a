"""
Configuration for the call handler.

All secrets are read from the environment exactly once and frozen into a
Config value that is handed to every service. Business logic never calls
os.getenv directly.

Python 3.9 compatible - uses typing.Dict, typing.List, typing.Mapping, typing.Optional
"""

import logging
import os
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# (env name, Config attribute)
REQUIRED_SECRETS = [
    ("TWILIO_ACCOUNT_SID", "twilio_account_sid"),
    ("TWILIO_AUTH_TOKEN", "twilio_auth_token"),
    ("TWILIO_FROM_NUMBER", "twilio_from_number"),
    ("SUPABASE_URL", "supabase_url"),
    ("SUPABASE_SERVICE_ROLE_KEY", "supabase_service_role_key"),
    ("OPENAI_API_KEY", "openai_api_key"),
    ("ELEVENLABS_API_KEY", "elevenlabs_api_key"),
]

DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_ELEVENLABS_MODEL_ID = "eleven_monolingual_v1"
DEFAULT_VOICE_PREFERENCE = "friendly_mentor"
DEFAULT_AUDIO_BUCKET = "twilio-audio-cache"


@dataclass(frozen=True)
class Config:
    """Immutable process configuration."""
    twilio_account_sid: str
    twilio_auth_token: str
    twilio_from_number: str
    supabase_url: str
    supabase_service_role_key: str
    openai_api_key: str
    elevenlabs_api_key: str

    openai_model: str = DEFAULT_OPENAI_MODEL
    elevenlabs_model_id: str = DEFAULT_ELEVENLABS_MODEL_ID
    default_voice_preference: str = DEFAULT_VOICE_PREFERENCE
    audio_bucket: str = DEFAULT_AUDIO_BUCKET
    webhook_base_url: Optional[str] = None
    jwt_verification_key: Optional[str] = None


def _mask_key(key: Optional[str]) -> str:
    """Mask a secret showing only last 4 chars."""
    if not key:
        return "(not set)"
    if len(key) <= 4:
        return "****"
    return f"****{key[-4:]}"


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def load_config(environ: Optional[Mapping[str, str]] = None) -> Config:
    """Build the Config from the environment.

    Args:
        environ: Mapping to read from (defaults to os.environ)

    Returns:
        A fully populated Config

    Raises:
        ConfigurationError: naming every missing required secret
    """
    env = os.environ if environ is None else environ

    values: Dict[str, str] = {}
    missing: List[str] = []
    for env_name, attr in REQUIRED_SECRETS:
        value = _clean(env.get(env_name))
        if value is None:
            missing.append(env_name)
        else:
            values[attr] = value

    if missing:
        logger.error(f"Configuration incomplete: missing={missing}")
        raise ConfigurationError(missing)

    webhook_base_url = _clean(env.get("WEBHOOK_BASE_URL"))
    config = Config(
        supabase_url=values.pop("supabase_url").rstrip("/"),
        openai_model=_clean(env.get("OPENAI_MODEL")) or DEFAULT_OPENAI_MODEL,
        elevenlabs_model_id=_clean(env.get("ELEVENLABS_MODEL_ID")) or DEFAULT_ELEVENLABS_MODEL_ID,
        default_voice_preference=_clean(env.get("DEFAULT_VOICE_PREFERENCE")) or DEFAULT_VOICE_PREFERENCE,
        audio_bucket=_clean(env.get("AUDIO_BUCKET")) or DEFAULT_AUDIO_BUCKET,
        webhook_base_url=webhook_base_url.rstrip("/") if webhook_base_url else None,
        jwt_verification_key=_clean(env.get("JWT_VERIFICATION_KEY")),
        **values,
    )

    logger.info(f"TWILIO_AUTH_TOKEN present: True ({_mask_key(config.twilio_auth_token)})")
    logger.info(f"OPENAI_API_KEY present: True ({_mask_key(config.openai_api_key)})")
    logger.info(f"ELEVENLABS_API_KEY present: True ({_mask_key(config.elevenlabs_api_key)})")
    logger.info(f"OPENAI_MODEL: {config.openai_model}")
    logger.info(f"JWT verification: {'enabled' if config.jwt_verification_key else 'claims-only'}")
    return config
