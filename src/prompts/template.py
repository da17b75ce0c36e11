"""
Template variable substitution for prompts.

Replaces ``{{ path }}`` placeholders with values looked up in a variable
mapping. Dotted paths walk nested mappings (``{{ user.name }}``).
"""

import json
import logging
import re
from typing import Any, Dict, List, Mapping

logger = logging.getLogger("prompts.template")

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([\w.]+)\s*\}\}", re.ASCII)

_MISSING = object()


def normalize_variables(raw: Any) -> Dict[str, Any]:
    """
    Coerce incoming prompt variables into a plain dict.

    Variables can arrive as a JSON string (LiveKit participant attributes are
    strings) or as an already-decoded object. Anything that does not decode
    to a JSON object becomes an empty dict.

    Example:
        >>> normalize_variables('{"user": {"name": "Ada"}}')
        {'user': {'name': 'Ada'}}
        >>> normalize_variables("not json")
        {}
    """
    if raw is None:
        return {}

    if isinstance(raw, str):
        if not raw.strip():
            return {}
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"[Prompts] Invalid prompt_variables JSON, ignoring: {e}")
            return {}

    if not isinstance(raw, Mapping):
        logger.warning(
            f"[Prompts] prompt_variables is {type(raw).__name__}, expected an object"
        )
        return {}

    return dict(raw)


def lookup_path(variables: Mapping[str, Any], path: str) -> Any:
    """Resolve a dotted path against nested mappings, or return _MISSING."""
    current: Any = variables
    for segment in path.split("."):
        if not isinstance(current, Mapping) or segment not in current:
            return _MISSING
        current = current[segment]
    return current


def render_value(value: Any) -> str:
    """
    String form of a substituted value, as JSON values print in JavaScript.

    Whole-number floats drop the fractional part (``1.0`` -> ``"1"``) and
    lists join their items with commas (``["a", "b"]`` -> ``"a,b"``).
    Mappings are the exception: they render as JSON text instead of an
    opaque object marker.
    """
    if value is _MISSING or value is None:
        return ""
    if isinstance(value, str):
        return value
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join(render_value(item) for item in value)
    if isinstance(value, Mapping):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def message_contents(messages: Any) -> List[str]:
    """
    Text of each message in a chat prompt.

    Messages without a ``content`` field (Langfuse placeholder messages) are
    skipped.
    """
    parts = []
    for message in messages:
        if isinstance(message, Mapping):
            if "content" not in message:
                continue
            content = message["content"]
            parts.append("" if content is None else str(content))
        else:
            parts.append("" if message is None else str(message))
    return parts


def to_prompt_string(value: Any) -> str:
    """
    Coerce a text or chat prompt into a single string.

    Chat prompts are lists of messages; their ``content`` fields are joined
    with newlines.
    """
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return "\n".join(message_contents(value))
    return str(value)


def _substitute(text: str, variables: Mapping[str, Any]) -> str:
    return PLACEHOLDER_PATTERN.sub(
        lambda match: render_value(lookup_path(variables, match.group(1))), text
    )


def render_template(template: Any, variables: Mapping[str, Any]) -> str:
    """
    Substitute ``{{ path }}`` placeholders in a single pass.

    Missing paths render as an empty string. Substituted values are not
    scanned again, so a value containing ``{{ x }}`` is inserted literally.
    Chat prompts are substituted message by message, then joined with
    newlines.

    Example:
        >>> render_template("Hello {{ user.name }}!", {"user": {"name": "Ada"}})
        'Hello Ada!'
    """
    if isinstance(template, (list, tuple)):
        return "\n".join(_substitute(part, variables) for part in message_contents(template))
    return _substitute(to_prompt_string(template), variables)
