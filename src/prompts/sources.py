"""
Remote prompt sources.

A prompt source fetches a named (optionally labelled) prompt from a prompt
management service. Langfuse is the only implementation.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Protocol

from langfuse import Langfuse

logger = logging.getLogger("prompts.sources")

DEFAULT_LANGFUSE_BASE_URL = "https://us.cloud.langfuse.com"


@dataclass
class RemotePrompt:
    """Prompt returned by a remote source."""

    prompt: Any  # str for text prompts, list of messages for chat prompts
    compile: Optional[Callable[[Mapping[str, Any]], Any]] = None


class PromptSource(Protocol):
    async def get(self, name: str, label: Optional[str] = None) -> Optional[RemotePrompt]:
        ...


class LangfusePromptSource:
    """Fetches prompts from Langfuse."""

    def __init__(self, client: Langfuse):
        self.client = client

    async def get(self, name: str, label: Optional[str] = None) -> Optional[RemotePrompt]:
        """
        Fetch a prompt by name and optional label.

        The Langfuse SDK is blocking, so the call runs in a worker thread.
        Errors from the SDK (auth, network, not found) propagate.

        Only the raw template is returned. The SDK's own ``compile`` looks up
        flat keys and keeps unresolved placeholders, so substitution is left
        to ``render_template`` (dotted paths, missing values render empty).
        Chat prompts come back as the SDK's list of message dicts.
        """
        if label:
            fetched = await asyncio.to_thread(self.client.get_prompt, name, label=label)
        else:
            fetched = await asyncio.to_thread(self.client.get_prompt, name)

        if fetched is None:
            return None

        return RemotePrompt(prompt=getattr(fetched, "prompt", ""))


def create_prompt_source(
    public_key: Optional[str] = None,
    secret_key: Optional[str] = None,
    base_url: Optional[str] = None,
) -> Optional[LangfusePromptSource]:
    """
    Build the Langfuse prompt source from environment variables.

    Reads LANGFUSE_PUBLIC_KEY, LANGFUSE_SECRET_KEY and LANGFUSE_BASE_URL.

    Returns:
        LangfusePromptSource, or None when credentials are missing or the
        client cannot be created. None selects the static fallback prompt.
    """
    if public_key is None:
        public_key = os.getenv("LANGFUSE_PUBLIC_KEY", "")
    if secret_key is None:
        secret_key = os.getenv("LANGFUSE_SECRET_KEY", "")
    if base_url is None:
        base_url = os.getenv("LANGFUSE_BASE_URL") or DEFAULT_LANGFUSE_BASE_URL

    if not public_key or not secret_key:
        logger.info("[Langfuse] Credentials not set, remote prompts disabled")
        return None

    try:
        client = Langfuse(public_key=public_key, secret_key=secret_key, host=base_url)
    except Exception as e:
        logger.error(
            f"[Langfuse] Failed to initialize client, falling back to static prompt: "
            f"{type(e).__name__}: {e}"
        )
        return None

    logger.info(f"[Langfuse] Client initialized for {base_url}")
    return LangfusePromptSource(client)
