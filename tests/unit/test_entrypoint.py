"""Tests for the agent worker entrypoint and helper functions"""
import os
from unittest.mock import MagicMock, patch

import pytest
from livekit.agents import AutoSubscribe

from prompts import DEFAULT_PROMPT, PromptResolver, PromptValidationError, RemotePrompt
from settings import AgentSettings, MissingEnvironmentError


class TestHelpers:
    """Test helper functions used by the entrypoint"""

    def test_prewarm_loads_vad(self):
        """Test that prewarm loads VAD with environment settings"""
        from agent import prewarm

        mock_proc = MagicMock()
        mock_proc.userdata = {}

        with patch.dict(os.environ, {"VAD_SAMPLE_RATE": "8000", "VAD_MIN_SILENCE_DURATION": "0.3"}, clear=True):
            with patch("livekit.plugins.silero.VAD.load") as mock_vad_load:
                mock_vad = MagicMock()
                mock_vad_load.return_value = mock_vad

                prewarm(mock_proc)

                mock_vad_load.assert_called_once()
                kwargs = mock_vad_load.call_args.kwargs
                assert kwargs["sample_rate"] == 8000
                assert kwargs["min_silence_duration"] == 0.3
                assert kwargs["force_cpu"] is False
                assert mock_proc.userdata["vad"] == mock_vad

    @pytest.mark.parametrize(
        "variables,expected",
        [
            ({"initial_content": "  Welcome back!  "}, "Welcome back!"),
            ({"initial_content": "   "}, "Hello! I'm your AI assistant. Let's get started."),
            ({}, "Hello! I'm your AI assistant. Let's get started."),
        ],
    )
    def test_initial_greeting(self, variables, expected):
        from agent import initial_greeting

        assert initial_greeting(variables) == expected

    @pytest.mark.asyncio
    async def test_resolve_session_prompt(self, stub_source_factory):
        """Test prompt resolution from participant attributes"""
        from agent import resolve_session_prompt

        source = stub_source_factory(
            prompts={("greeting", "v2"): RemotePrompt(prompt="Hello {{ user.name }}!")}
        )
        attributes = {
            "prompt_name": "greeting",
            "prompt_label": "v2",
            "prompt_variables": '{"user": {"name": "Ada"}}',
        }

        request, prompt = await resolve_session_prompt(attributes, PromptResolver(source=source))

        assert prompt == "Hello Ada!"
        assert request.variables == {"user": {"name": "Ada"}}

    def test_build_room_input_options_with_noise_cancellation(self, agent_env):
        from agent import build_room_input_options

        with patch.dict(os.environ, dict(agent_env, ENABLE_NOISE_CANCELLATION="true"), clear=True):
            settings = AgentSettings.from_env()

        with patch("agent.noise_cancellation.BVC") as mock_bvc:
            options = build_room_input_options(settings)

        mock_bvc.assert_called_once()
        assert options.noise_cancellation == mock_bvc.return_value

    def test_build_room_input_options_without_noise_cancellation(self, agent_env):
        from agent import build_room_input_options

        with patch.dict(os.environ, agent_env, clear=True):
            settings = AgentSettings.from_env()

        with patch("agent.noise_cancellation.BVC") as mock_bvc:
            options = build_room_input_options(settings)

        mock_bvc.assert_not_called()
        assert options.noise_cancellation is None

    def test_build_session_uses_settings(self, agent_env):
        """Test that provider plugins get the configured models"""
        from agent import build_session

        with patch.dict(os.environ, dict(agent_env, DEEPGRAM_ENDPOINTING="40"), clear=True):
            settings = AgentSettings.from_env()
        vad = MagicMock()

        with patch("agent.deepgram.STT") as mock_stt, \
                patch("agent.openai.LLM") as mock_llm, \
                patch("agent.cartesia.TTS") as mock_tts, \
                patch("agent.MultilingualModel") as mock_turn, \
                patch("agent.AgentSession") as mock_session_class:
            build_session(settings, vad)

        mock_stt.assert_called_once_with(model="nova-2-phonecall", endpointing_ms=40, api_key="dg-test")
        assert mock_llm.call_args.kwargs["model"] == "gpt-4o-mini"
        mock_tts.assert_called_once_with(voice="78ab82d5-25be-4f7d-82b3-7ad64e5b85b2")

        kwargs = mock_session_class.call_args.kwargs
        assert kwargs["vad"] is vad
        assert kwargs["turn_detection"] == mock_turn.return_value
        assert kwargs["allow_interruptions"] is True
        assert kwargs["min_interruption_duration"] == 0.5
        assert kwargs["min_endpointing_delay"] == 0.65
        assert kwargs["preemptive_generation"] is False


class TestEntrypoint:
    """Test the main entrypoint"""

    @pytest.mark.asyncio
    async def test_entrypoint_requires_credentials(self, mock_job_context):
        from agent import entrypoint

        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(MissingEnvironmentError):
                await entrypoint(mock_job_context)

        mock_job_context.connect.assert_not_called()

    @pytest.mark.asyncio
    async def test_entrypoint_starts_session_with_resolved_prompt(
        self, mock_job_context, mock_agent_session, agent_env, stub_source_factory
    ):
        """Test the full session start with a labelled remote prompt"""
        from agent import entrypoint

        source = stub_source_factory(
            prompts={("greeting", "v2"): RemotePrompt(prompt="Hello {{ user.name }}!")}
        )

        with patch.dict(os.environ, agent_env, clear=True):
            with patch("agent.create_prompt_source", return_value=source), \
                    patch("agent.build_session", return_value=mock_agent_session) as mock_build, \
                    patch("agent.Agent") as mock_agent_class:
                await entrypoint(mock_job_context)

        mock_job_context.connect.assert_awaited_once_with(auto_subscribe=AutoSubscribe.AUDIO_ONLY)
        mock_job_context.wait_for_participant.assert_awaited_once()
        assert mock_job_context.log_context_fields["room"] == "test_room"

        mock_build.assert_called_once()
        assert mock_build.call_args.args[1] is mock_job_context.proc.userdata["vad"]

        mock_agent_class.assert_called_once_with(instructions="Hello Ada!")
        mock_agent_session.start.assert_awaited_once()
        assert mock_agent_session.start.call_args.kwargs["room"] is mock_job_context.room
        mock_agent_session.say.assert_awaited_once_with("Hi Ada!", allow_interruptions=True)

    @pytest.mark.asyncio
    async def test_entrypoint_registers_event_handlers(
        self, mock_job_context, mock_agent_session, agent_env
    ):
        from agent import entrypoint

        with patch.dict(os.environ, agent_env, clear=True):
            with patch("agent.create_prompt_source", return_value=None), \
                    patch("agent.build_session", return_value=mock_agent_session), \
                    patch("agent.Agent"):
                await entrypoint(mock_job_context)

        event_names = [call[0][0] for call in mock_agent_session.on.call_args_list]
        assert "agent_false_interruption" in event_names
        assert "metrics_collected" in event_names

        mock_job_context.add_shutdown_callback.assert_called_once()
        callback = mock_job_context.add_shutdown_callback.call_args[0][0]
        assert callable(callback)

    @pytest.mark.asyncio
    async def test_entrypoint_without_prompt_service_uses_fallback(
        self, mock_job_context, mock_agent_session, agent_env
    ):
        from agent import entrypoint

        with patch.dict(os.environ, agent_env, clear=True):
            with patch("agent.build_session", return_value=mock_agent_session), \
                    patch("agent.Agent") as mock_agent_class:
                await entrypoint(mock_job_context)

        mock_agent_class.assert_called_once_with(instructions=DEFAULT_PROMPT)

    @pytest.mark.asyncio
    async def test_entrypoint_prefers_inline_prompt_text(
        self, mock_job_context, mock_agent_session, agent_env, stub_source_factory
    ):
        from agent import entrypoint

        mock_job_context.wait_for_participant.return_value.attributes = {
            "prompt_text": "You interview {{ candidate }} for Acme.",
            "prompt_variables": '{"candidate": "Ada"}',
        }
        source = stub_source_factory()

        with patch.dict(os.environ, agent_env, clear=True):
            with patch("agent.create_prompt_source", return_value=source), \
                    patch("agent.build_session", return_value=mock_agent_session), \
                    patch("agent.Agent") as mock_agent_class:
                await entrypoint(mock_job_context)

        mock_agent_class.assert_called_once_with(instructions="You interview Ada for Acme.")
        assert source.calls == []
        mock_agent_session.say.assert_awaited_once_with(
            "Hello! I'm your AI assistant. Let's get started.", allow_interruptions=True
        )

    @pytest.mark.asyncio
    async def test_entrypoint_rejects_missing_prompt_name(
        self, mock_job_context, mock_agent_session, agent_env
    ):
        from agent import entrypoint

        mock_job_context.wait_for_participant.return_value.attributes = {}

        with patch.dict(os.environ, agent_env, clear=True):
            with patch("agent.create_prompt_source", return_value=None), \
                    patch("agent.build_session", return_value=mock_agent_session) as mock_build:
                with pytest.raises(PromptValidationError):
                    await entrypoint(mock_job_context)

        mock_build.assert_not_called()

    @pytest.mark.asyncio
    async def test_entrypoint_logs_configuration_in_debug(
        self, mocker, mock_job_context, mock_agent_session, agent_env
    ):
        from agent import entrypoint

        mocker.patch.dict(os.environ, dict(agent_env, DEBUG_AGENT_LOGS="true"), clear=True)
        mocker.patch("agent.create_prompt_source", return_value=None)
        mocker.patch("agent.build_session", return_value=mock_agent_session)
        mocker.patch("agent.Agent")
        log_configuration = mocker.spy(AgentSettings, "log_configuration")

        await entrypoint(mock_job_context)

        log_configuration.assert_called_once()
