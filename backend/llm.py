"""Narrative generator boundary: one chat completion against an OpenAI-compatible API."""

import logging

from openai import AsyncOpenAI, OpenAIError

import config

logger = logging.getLogger(__name__)


def get_client() -> tuple[AsyncOpenAI, str] | None:
    """Configured (client, model) pair, preferring OpenAI over Groq; None if neither."""
    if config.OPENAI_API_KEY:
        return AsyncOpenAI(api_key=config.OPENAI_API_KEY, timeout=config.HTTP_TIMEOUT_S, max_retries=0), config.OPENAI_MODEL
    if config.GROQ_API_KEY:
        return (
            AsyncOpenAI(
                api_key=config.GROQ_API_KEY,
                base_url=config.GROQ_API_URL,
                timeout=config.HTTP_TIMEOUT_S,
                max_retries=0,
            ),
            config.GROQ_MODEL,
        )
    return None


async def complete(
    messages: list[dict],
    temperature: float = config.LLM_TEMPERATURE,
    json_output: bool = True,
) -> str | None:
    """Return the assistant message text, or None when no answer is available."""
    configured = get_client()
    if configured is None:
        logger.info("No LLM provider configured")
        return None
    client, model = configured

    kwargs = {}
    if json_output:
        kwargs["response_format"] = {"type": "json_object"}

    try:
        async with client:
            response = await client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=temperature,
                **kwargs,
            )
    except OpenAIError as exc:
        logger.warning("LLM call failed: %s", exc)
        return None

    if not response.choices:
        return None
    content = response.choices[0].message.content
    logger.debug("Raw LLM response length: %d chars", len(content or ""))
    return content or None
