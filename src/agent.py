import json
import logging
from typing import Any, Mapping

import httpx
from livekit.agents import (
    Agent,
    AgentFalseInterruptionEvent,
    AgentSession,
    AutoSubscribe,
    JobContext,
    JobProcess,
    MetricsCollectedEvent,
    RoomInputOptions,
    WorkerOptions,
    cli,
    metrics,
)
from livekit.plugins import cartesia, deepgram, noise_cancellation, openai, silero
from livekit.plugins.turn_detector.multilingual import MultilingualModel

from prompts import PromptRequest, PromptResolver, create_prompt_source
from settings import AgentSettings, VADSettings, load_env

logger = logging.getLogger("agent")

load_env()

DEFAULT_GREETING = "Hello! I'm your AI assistant. Let's get started."


def prewarm(proc: JobProcess):
    # Load Silero VAD once per worker process
    vad = VADSettings.from_env()
    proc.userdata["vad"] = silero.VAD.load(
        min_speech_duration=vad.min_speech_duration,
        min_silence_duration=vad.min_silence_duration,
        prefix_padding_duration=vad.prefix_padding_duration,
        max_buffered_speech=vad.max_buffered_speech,
        activation_threshold=vad.activation_threshold,
        sample_rate=vad.sample_rate,
        force_cpu=vad.force_cpu,
    )


def initial_greeting(variables: Mapping[str, Any]) -> str:
    """First sentence the agent speaks: prompt_variables.initial_content or a default."""
    content = variables.get("initial_content")
    text = str(content).strip() if content is not None else ""
    return text or DEFAULT_GREETING


async def resolve_session_prompt(attributes: Mapping[str, Any], resolver: PromptResolver):
    """
    Resolve the system prompt from participant attributes.

    Returns:
        (request, prompt) tuple

    Raises:
        PromptValidationError: If neither prompt_text nor prompt_name is set
    """
    request = PromptRequest.from_attributes(attributes)
    prompt = await resolver.resolve(request)
    logger.info(f"[Agent] Compiled prompt:\n{prompt}")
    return request, prompt


def build_session(settings: AgentSettings, vad) -> AgentSession:
    """Assemble the STT -> LLM -> TTS voice pipeline."""
    return AgentSession(
        stt=deepgram.STT(
            model=settings.deepgram_model,
            endpointing_ms=settings.deepgram_endpointing_ms,
            api_key=settings.deepgram_api_key,
        ),
        llm=openai.LLM(
            model=settings.openai_model,
            api_key=settings.openai_api_key,
            timeout=httpx.Timeout(connect=15.0, read=30.0, write=5.0, pool=5.0),
        ),
        tts=cartesia.TTS(voice=settings.cartesia_voice_id),
        vad=vad,
        turn_detection=MultilingualModel(),
        allow_interruptions=settings.allow_interruptions,
        min_interruption_duration=settings.min_interruption_duration,
        min_interruption_words=settings.interrupt_min_words,
        min_endpointing_delay=settings.min_endpointing_delay,
        preemptive_generation=settings.preemptive_generation,
    )


def build_room_input_options(settings: AgentSettings) -> RoomInputOptions:
    if settings.enable_noise_cancellation:
        return RoomInputOptions(noise_cancellation=noise_cancellation.BVC())
    return RoomInputOptions()


async def entrypoint(ctx: JobContext):
    settings = AgentSettings.from_env()
    if settings.debug_logs:
        logger.setLevel(logging.DEBUG)
    settings.log_configuration(logger)

    ctx.log_context_fields = {
        "room": ctx.room.name,
    }

    await ctx.connect(auto_subscribe=AutoSubscribe.AUDIO_ONLY)
    logger.debug("waiting for participant")
    participant = await ctx.wait_for_participant()

    attributes = dict(participant.attributes or {})
    logger.info(f"[Agent] LiveKit participant attributes: {json.dumps(attributes)}")
    logger.debug(f"starting assistant for {participant.identity}")

    resolver = PromptResolver(source=create_prompt_source())
    request, prompt = await resolve_session_prompt(attributes, resolver)
    greeting = initial_greeting(request.variables)

    session = build_session(settings, ctx.proc.userdata["vad"])

    # Background noise can register as an interruption; resume when it does
    @session.on("agent_false_interruption")
    def _on_agent_false_interruption(ev: AgentFalseInterruptionEvent):
        logger.info("[Agent] False positive interruption detected, resuming")
        session.generate_reply()

    usage_collector = metrics.UsageCollector()

    @session.on("metrics_collected")
    def _on_metrics_collected(ev: MetricsCollectedEvent):
        metrics.log_metrics(ev.metrics)
        usage_collector.collect(ev.metrics)

    async def log_usage():
        summary = usage_collector.get_summary()
        logger.info(f"[Metrics] Session usage: {summary}")

    ctx.add_shutdown_callback(log_usage)

    await session.start(
        agent=Agent(instructions=prompt),
        room=ctx.room,
        room_input_options=build_room_input_options(settings),
    )

    await session.say(greeting, allow_interruptions=True)


if __name__ == "__main__":
    cli.run_app(WorkerOptions(entrypoint_fnc=entrypoint, prewarm_fnc=prewarm))
