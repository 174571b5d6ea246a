"""
TwiML for one conversational turn.

Order matters - Twilio executes verbs top to bottom:
1. <Play> the synthesized reply once
2. <Gather input="speech"> with a 10 second idle timeout and automatic
   end-of-speech detection, posting the transcription back to the webhook
3. Only reached when the gather hears nothing: say goodbye and <Hangup/>

Step 3 runs entirely on Twilio's side; it never calls back into this service.
"""

from twilio.twiml.voice_response import VoiceResponse

GATHER_TIMEOUT_SECONDS = 10
PROMPT_VOICE = "alice"
GATHER_PROMPT = "Please respond when you're ready."
NO_RESPONSE_GOODBYE = "I didn't hear a response. Have a great day!"


def build_markup(audio_url: str, next_callback_url: str) -> str:
    """Build the TwiML document for a turn.

    Args:
        audio_url: Public URL of the synthesized reply
        next_callback_url: Webhook URL for the caller's answer

    Returns:
        TwiML XML string
    """
    response = VoiceResponse()
    response.play(audio_url)

    gather = response.gather(
        input="speech",
        timeout=GATHER_TIMEOUT_SECONDS,
        speech_timeout="auto",
        action=next_callback_url,
        method="POST",
    )
    gather.say(GATHER_PROMPT, voice=PROMPT_VOICE)

    response.say(NO_RESPONSE_GOODBYE, voice=PROMPT_VOICE)
    response.hangup()

    return str(response)
