"""Future Self call handler: Twilio voice-call webhook orchestration."""

__version__ = "1.0.0"
