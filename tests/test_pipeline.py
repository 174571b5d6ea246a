"""
Tests for the reply pipeline.

These tests verify that:
1. A successful turn calls each collaborator once, in order
2. The first failing stage stops every later stage
3. The opening and continuation instructions reach the generator
"""

from unittest.mock import AsyncMock

import pytest

from futurecall.errors import UpstreamError
from futurecall.models import ContinuationTurn, InitialTurn
from futurecall.turns import OPENING_INSTRUCTION

NEXT_URL = "https://calls.example.com/twiml-webhook?user_id=u1"


class TestReplyPipeline:

    def test_stage_order(self, pipeline):
        assert [name for name, _ in pipeline.stages] == [
            "profile", "instruction", "generation", "synthesis", "storage", "markup",
        ]

    @pytest.mark.asyncio
    async def test_initial_turn(self, pipeline, profiles, generator, speech, storage):
        markup = await pipeline.build_turn_response("u1", InitialTurn(), NEXT_URL, "req_1")

        profiles.get_user_context.assert_awaited_once_with("u1", "req_1")
        user_id, instruction, goals_text = generator.generate_reply.await_args.args
        assert user_id == "u1"
        assert instruction == OPENING_INSTRUCTION
        assert "Goal 1: Run a marathon" in goals_text
        speech.synthesize.assert_awaited_once_with(
            "Hey, it's you from the future.", "voice-abc", request_id="req_1"
        )
        storage.save_audio.assert_awaited_once_with(b"ID3-fake-mp3", "req_1")

        audio_url = storage.save_audio.return_value.public_url
        assert f"<Play>{audio_url}</Play>" in markup
        assert f'action="{NEXT_URL}"' in markup

    @pytest.mark.asyncio
    async def test_continuation_turn(self, pipeline, generator):
        context = ContinuationTurn(utterance="I ran five miles", confidence=0.9)
        await pipeline.build_turn_response("u1", context, NEXT_URL, "req_2")

        instruction = generator.generate_reply.await_args.args[1]
        assert '"I ran five miles"' in instruction

    @pytest.mark.asyncio
    async def test_profile_failure_stops_generation(self, pipeline, profiles, generator, speech):
        profiles.get_user_context = AsyncMock(side_effect=UpstreamError("database", "Failed to query goals"))

        with pytest.raises(UpstreamError) as exc_info:
            await pipeline.build_turn_response("u1", InitialTurn(), NEXT_URL, "req_1")

        assert exc_info.value.stage == "database"
        generator.generate_reply.assert_not_awaited()
        speech.synthesize.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_generation_failure_stops_synthesis(self, pipeline, generator, speech, storage):
        generator.generate_reply = AsyncMock(side_effect=UpstreamError("generation", "OpenAI API error: boom"))

        with pytest.raises(UpstreamError) as exc_info:
            await pipeline.build_turn_response("u1", InitialTurn(), NEXT_URL, "req_1")

        assert exc_info.value.message == "OpenAI API error: boom"
        speech.synthesize.assert_not_awaited()
        storage.save_audio.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_storage_failure_produces_no_markup(self, pipeline, storage):
        storage.save_audio = AsyncMock(
            side_effect=UpstreamError("storage", "Failed to upload audio to storage: Bucket not found")
        )

        with pytest.raises(UpstreamError) as exc_info:
            await pipeline.build_turn_response("u1", InitialTurn(), NEXT_URL, "req_1")
        assert exc_info.value.stage == "storage"
