"""
Configuration for the agent worker and the conversation API.

Usage:
    from settings import AgentSettings, load_env

    load_env()
    settings = AgentSettings.from_env()
"""

from .agent_settings import AgentSettings, VADSettings
from .env import (
    MissingEnvironmentError,
    env_flag,
    env_float,
    env_int,
    load_env,
    require_env,
)
from .server_settings import ServerSettings

__all__ = [
    "AgentSettings",
    "MissingEnvironmentError",
    "ServerSettings",
    "VADSettings",
    "env_flag",
    "env_float",
    "env_int",
    "load_env",
    "require_env",
]
