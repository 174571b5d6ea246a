"""
Turn classification and prompt instructions.

A call is a chain of independent webhooks. Nothing is remembered between
them: each webhook is classified from its own form fields, and the
instruction for the language model follows from that classification alone.

Both functions here are pure and never raise.

Python 3.9 compatible - uses typing.Mapping, typing.Optional
"""

from typing import Mapping, Optional

from .models import ContinuationTurn, InitialTurn, TurnContext

SPEECH_RESULT_FIELD = "SpeechResult"
CONFIDENCE_FIELD = "Confidence"

OPENING_INSTRUCTION = (
    "This is the beginning of a motivational call. "
    "Greet the user warmly and ask how they are doing with their goals."
)

CONTINUATION_INSTRUCTION = (
    'The user just said: "{utterance}". '
    "Please respond appropriately and continue the conversation about their goals."
)


def _parse_confidence(raw: Optional[str]) -> Optional[float]:
    if raw is None:
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def classify(form: Mapping[str, str]) -> TurnContext:
    """Decide which turn of the conversation this webhook is.

    A non-empty SpeechResult (even whitespace) means the caller answered the
    previous gather; anything else is the opening turn.
    """
    utterance = form.get(SPEECH_RESULT_FIELD)
    if isinstance(utterance, str) and utterance:
        return ContinuationTurn(
            utterance=utterance,
            confidence=_parse_confidence(form.get(CONFIDENCE_FIELD)),
        )
    return InitialTurn()


def build_instruction(context: TurnContext) -> str:
    """Turn a classified webhook into an instruction for the language model."""
    if isinstance(context, ContinuationTurn):
        return CONTINUATION_INSTRUCTION.format(utterance=context.utterance)
    return OPENING_INSTRUCTION
