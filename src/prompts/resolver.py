"""
Prompt resolution for new sessions.

Produces the system prompt that seeds a conversation. Sources are tried in
order and the first one that yields text wins:

1. inline prompt text sent with the session
2. a named prompt from the remote prompt source (label first, then without)
3. a static default prompt
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .sources import PromptSource
from .template import normalize_variables, render_template, to_prompt_string

logger = logging.getLogger("prompts.resolver")

DEFAULT_PROMPT = (
    "You are a helpful, concise voice assistant. Provide clear, direct answers."
)


class PromptValidationError(ValueError):
    """Raised when a prompt request identifies no prompt at all."""


@dataclass
class PromptRequest:
    """Prompt requested for a single session."""

    name: Optional[str] = None
    label: Optional[str] = None
    inline_text: Optional[str] = None
    variables: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.variables = normalize_variables(self.variables)

    @classmethod
    def from_attributes(cls, attributes: Mapping[str, Any]) -> "PromptRequest":
        """Build a request from LiveKit participant attributes (snake_case keys)."""
        return cls(
            name=attributes.get("prompt_name") or None,
            label=attributes.get("prompt_label") or None,
            inline_text=attributes.get("prompt_text"),
            variables=attributes.get("prompt_variables"),
        )

    @property
    def stripped_inline_text(self) -> str:
        if not isinstance(self.inline_text, str):
            return ""
        return self.inline_text.strip()


class InlineTextStrategy:
    """Uses prompt text sent with the request. Never touches the network."""

    async def __call__(self, request: PromptRequest) -> Optional[str]:
        text = request.stripped_inline_text
        if not text:
            return None
        logger.info("[Prompts] Using inline prompt text")
        return render_template(text, request.variables)


class RemotePromptStrategy:
    """
    Fetches the named prompt from a remote source.

    A labelled lookup that fails or finds nothing is retried once without
    the label. Errors are logged and turn into None.
    """

    def __init__(self, source: PromptSource):
        self.source = source

    async def _fetch(self, request: PromptRequest):
        if request.label:
            try:
                fetched = await self.source.get(request.name, label=request.label)
                if fetched is not None:
                    return fetched
                logger.warning(
                    f"[Langfuse] Prompt {request.name} (label: {request.label}) not found, "
                    f"retrying without label"
                )
            except Exception as e:
                logger.warning(
                    f"[Langfuse] Labelled lookup failed for {request.name} "
                    f"(label: {request.label}): {type(e).__name__}: {e}; retrying without label"
                )
        return await self.source.get(request.name)

    async def __call__(self, request: PromptRequest) -> Optional[str]:
        try:
            fetched = await self._fetch(request)
            if fetched is None:
                label_info = f" (label: {request.label})" if request.label else ""
                logger.error(f"[Langfuse] Prompt not found: {request.name}{label_info}")
                return None

            if fetched.compile is not None:
                compiled = to_prompt_string(fetched.compile(request.variables))
            else:
                compiled = render_template(fetched.prompt, request.variables)
        except Exception as e:
            logger.error(
                f"[Langfuse] Error fetching/compiling prompt {request.name}: "
                f"{type(e).__name__}: {e}"
            )
            return None

        logger.info(f"[Langfuse] Prompt (compiled):\n{compiled}")
        return compiled


class StaticFallbackStrategy:
    """Default prompt used when nothing else resolves."""

    def __init__(self, template: str = DEFAULT_PROMPT):
        self.template = template

    async def __call__(self, request: PromptRequest) -> Optional[str]:
        logger.info("[Prompts] Using fallback prompt")
        return render_template(self.template, request.variables)


class PromptResolver:
    """
    Resolves the system prompt for a session.

    Args:
        source: Remote prompt source, or None when no prompt service is
            configured (only inline text and the fallback are used then)
        fallback_template: Prompt used when nothing else resolves
    """

    def __init__(self, source: Optional[PromptSource] = None, fallback_template: str = DEFAULT_PROMPT):
        self.source = source
        self.strategies: List[Any] = [InlineTextStrategy()]
        if source is not None:
            self.strategies.append(RemotePromptStrategy(source))
        self.strategies.append(StaticFallbackStrategy(fallback_template))

    def validate(self, request: PromptRequest) -> None:
        if request.stripped_inline_text:
            return
        if not isinstance(request.name, str) or not request.name.strip():
            raise PromptValidationError(
                "Missing prompt_name: a prompt name is required when no prompt_text is given"
            )

    async def resolve(self, request: PromptRequest) -> str:
        """
        Return the prompt for a request.

        Raises:
            PromptValidationError: If neither inline text nor a prompt name
                was given
        """
        self.validate(request)

        if self.source is None and not request.stripped_inline_text:
            logger.info("[Langfuse] Not configured. Using fallback prompt.")

        for strategy in self.strategies:
            result = await strategy(request)
            if result is not None:
                return result

        return ""
