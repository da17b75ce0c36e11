"""
Prompt resolution module.

Resolves the system prompt for a session from inline text, a Langfuse prompt,
or a static fallback, with ``{{ path }}`` variable substitution.
"""

from .resolver import (
    DEFAULT_PROMPT,
    PromptRequest,
    PromptResolver,
    PromptValidationError,
)
from .sources import LangfusePromptSource, PromptSource, RemotePrompt, create_prompt_source
from .template import normalize_variables, render_template

__all__ = [
    "DEFAULT_PROMPT",
    "LangfusePromptSource",
    "PromptRequest",
    "PromptResolver",
    "PromptSource",
    "PromptValidationError",
    "RemotePrompt",
    "create_prompt_source",
    "normalize_variables",
    "render_template",
]
