"""
Agent worker configuration.

Every provider and pipeline knob of the voice agent is read from the
environment. Durations are given in milliseconds for the agent
(AGENT_*, DEEPGRAM_ENDPOINTING) and in seconds for the VAD (VAD_*).
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from .env import env_flag, env_float, env_int, require_env

REQUIRED_AGENT_ENV = [
    "LIVEKIT_URL",
    "LIVEKIT_API_KEY",
    "LIVEKIT_API_SECRET",
    "OPENAI_API_KEY",
    "DEEPGRAM_API_KEY",
]

DEFAULT_CARTESIA_VOICE_ID = "78ab82d5-25be-4f7d-82b3-7ad64e5b85b2"


@dataclass
class VADSettings:
    """Silero VAD parameters (seconds)."""

    min_speech_duration: float = 0.05
    min_silence_duration: float = 0.55
    prefix_padding_duration: float = 0.5
    max_buffered_speech: float = 60.0
    activation_threshold: float = 0.5
    sample_rate: int = 16000
    force_cpu: bool = False

    @classmethod
    def from_env(cls) -> "VADSettings":
        # Silero only supports 8kHz and 16kHz
        sample_rate = 8000 if env_int("VAD_SAMPLE_RATE", 16000) == 8000 else 16000
        return cls(
            min_speech_duration=env_float("VAD_MIN_SPEECH_DURATION", 0.05),
            min_silence_duration=env_float("VAD_MIN_SILENCE_DURATION", 0.55),
            prefix_padding_duration=env_float("VAD_PREFIX_PADDING_DURATION", 0.5),
            max_buffered_speech=env_float("VAD_MAX_BUFFERED_SPEECH", 60.0),
            activation_threshold=env_float("VAD_ACTIVATION_THRESHOLD", 0.5),
            sample_rate=sample_rate,
            force_cpu=env_flag("VAD_FORCE_CPU"),
        )


@dataclass
class AgentSettings:
    """Voice agent configuration."""

    openai_api_key: str
    deepgram_api_key: str
    openai_model: str = "gpt-4o-mini"
    deepgram_model: str = "nova-2-phonecall"
    deepgram_endpointing_ms: int = 25
    cartesia_voice_id: str = DEFAULT_CARTESIA_VOICE_ID

    # Turn-taking
    allow_interruptions: bool = True
    interrupt_speech_duration_ms: int = 500
    interrupt_min_words: int = 0
    min_endpointing_delay_ms: int = 650
    preemptive_generation: bool = False

    enable_noise_cancellation: bool = False
    debug_logs: bool = False
    vad: Optional[VADSettings] = None

    def __post_init__(self):
        if self.vad is None:
            self.vad = VADSettings()

    @classmethod
    def from_env(cls) -> "AgentSettings":
        """
        Load agent configuration from environment variables.

        Raises:
            MissingEnvironmentError: If LiveKit, OpenAI or Deepgram
                credentials are missing
        """
        require_env(REQUIRED_AGENT_ENV)
        return cls(
            openai_api_key=os.environ["OPENAI_API_KEY"],
            deepgram_api_key=os.environ["DEEPGRAM_API_KEY"],
            openai_model=os.getenv("OPENAI_MODEL") or "gpt-4o-mini",
            deepgram_model=os.getenv("DEEPGRAM_MODEL") or "nova-2-phonecall",
            deepgram_endpointing_ms=env_int("DEEPGRAM_ENDPOINTING", 25),
            cartesia_voice_id=os.getenv("CARTESIA_VOICE_ID") or DEFAULT_CARTESIA_VOICE_ID,
            interrupt_speech_duration_ms=env_int("AGENT_INTERRUPT_SPEECH_DURATION", 500),
            interrupt_min_words=env_int("AGENT_INTERRUPT_MIN_WORDS", 0),
            min_endpointing_delay_ms=env_int("AGENT_MIN_ENDPOINTING_DELAY", 650),
            enable_noise_cancellation=env_flag("ENABLE_NOISE_CANCELLATION"),
            debug_logs=env_flag("DEBUG_AGENT_LOGS"),
            vad=VADSettings.from_env(),
        )

    @property
    def min_interruption_duration(self) -> float:
        return self.interrupt_speech_duration_ms / 1000.0

    @property
    def min_endpointing_delay(self) -> float:
        return self.min_endpointing_delay_ms / 1000.0

    def log_configuration(self, logger: logging.Logger) -> None:
        """Log the effective configuration (only with DEBUG_AGENT_LOGS=true)."""
        if not self.debug_logs:
            return
        logger.info("Agent Configuration:")
        logger.info(f"- OpenAI Model: {self.openai_model}")
        logger.info(f"- Deepgram Model: {self.deepgram_model}")
        logger.info(f"- Deepgram Endpointing: {self.deepgram_endpointing_ms}")
        logger.info(f"- Cartesia Voice ID: {self.cartesia_voice_id}")
        logger.info(f"- Allow Interruptions: {self.allow_interruptions}")
        logger.info(f"- Interrupt Speech Duration: {self.interrupt_speech_duration_ms}")
        logger.info(f"- Interrupt Min Words: {self.interrupt_min_words}")
        logger.info(f"- Min Endpointing Delay: {self.min_endpointing_delay_ms}")
        logger.info(f"- VAD Min Speech Duration: {self.vad.min_speech_duration}")
        logger.info(f"- VAD Min Silence Duration: {self.vad.min_silence_duration}")
        logger.info(f"- VAD Prefix Padding Duration: {self.vad.prefix_padding_duration}")
        logger.info(f"- VAD Max Buffered Speech: {self.vad.max_buffered_speech}")
        logger.info(f"- VAD Activation Threshold: {self.vad.activation_threshold}")
        logger.info(f"- VAD Sample Rate: {self.vad.sample_rate}")
        logger.info(f"- VAD Force CPU: {self.vad.force_cpu}")
        logger.info(f"- Noise Cancellation: {self.enable_noise_cancellation}")
