"""
LLM gateway
All model-provider network I/O lives here. Callers either get text back or,
via complete(), the fixed fallback reply; provider exceptions never leak out.
"""

import asyncio
import logging
from typing import Iterable, List, Optional

import anthropic
from anthropic import AsyncAnthropic

import config

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = (
    "Hey! I'm having a bit of trouble connecting right now. "
    "What's up with your workout today? I can still help you out! 💪"
)


class GenerationUnavailable(Exception):
    """The provider could not produce text for this call (credentials, network, timeout, bad response)"""


def to_provider_messages(history: Iterable, prompt: str) -> List[dict]:
    """
    Build the alternating user/assistant list the Messages API expects

    History entries may be MessageEntry objects or plain dicts. System turns
    are dropped, leading assistant turns are skipped (the first turn must be
    the user's) and consecutive turns from the same role are merged.
    """
    messages: List[dict] = []
    turns = [*history, {'role': 'user', 'content': prompt}]
    for turn in turns:
        role = turn['role'] if isinstance(turn, dict) else turn.role
        content = turn['content'] if isinstance(turn, dict) else turn.content
        if role not in ('user', 'assistant') or not content:
            continue
        if not messages and role == 'assistant':
            continue
        if messages and messages[-1]['role'] == role:
            messages[-1]['content'] += '\n\n' + content
        else:
            messages.append({'role': role, 'content': content})
    return messages


def _first_text(message) -> str:
    for block in getattr(message, 'content', None) or []:
        if getattr(block, 'type', None) == 'text' and getattr(block, 'text', None):
            return block.text.strip()
    return ''


class LLMGateway:
    """
    Single-attempt text generation against the Anthropic Messages API

    One call per request, no retries, bounded by `timeout` seconds. A client
    can be injected (tests, custom transports); otherwise a short-lived
    AsyncAnthropic client is opened per call so it never outlives the event
    loop that Flask spins up for an async view.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        timeout: Optional[float] = None,
        client=None,
    ) -> None:
        self.api_key = api_key if api_key is not None else config.ANTHROPIC_API_KEY
        self.model = model or config.LLM_MODEL
        self.max_tokens = max_tokens or config.LLM_MAX_TOKENS
        self.temperature = config.LLM_TEMPERATURE if temperature is None else temperature
        self.timeout = timeout or config.LLM_TIMEOUT_SECONDS
        self._client = client

    async def generate(self, prompt: str, system: Optional[str] = None, history: Iterable = (),
                       max_tokens: Optional[int] = None) -> str:
        """Return the model's reply text or raise GenerationUnavailable"""
        if self._client is None and not self.api_key:
            raise GenerationUnavailable('ANTHROPIC_API_KEY is not set')

        request = {
            'model': self.model,
            'max_tokens': max_tokens or self.max_tokens,
            'temperature': self.temperature,
            'messages': to_provider_messages(history, prompt),
        }
        if system:
            request['system'] = system

        try:
            message = await asyncio.wait_for(self._create(request), timeout=self.timeout)
        except (asyncio.TimeoutError, TimeoutError) as e:
            raise GenerationUnavailable(f'no reply within {self.timeout:g}s') from e
        except anthropic.AnthropicError as e:
            raise GenerationUnavailable(f'provider error ({e.__class__.__name__}): {e}') from e

        text = _first_text(message)
        if not text:
            raise GenerationUnavailable('response contained no text')

        usage = getattr(message, 'usage', None)
        if usage is not None:
            logger.debug("LLM usage: %s input / %s output tokens",
                         getattr(usage, 'input_tokens', '?'), getattr(usage, 'output_tokens', '?'))
        return text

    async def complete(self, prompt: str, system: Optional[str] = None, history: Iterable = ()) -> str:
        """Like generate(), but degrades to FALLBACK_MESSAGE instead of raising"""
        try:
            return await self.generate(prompt, system=system, history=history)
        except GenerationUnavailable as e:
            logger.warning("LLM unavailable, sending fallback reply: %s", e)
            return FALLBACK_MESSAGE

    async def _create(self, request: dict):
        if self._client is not None:
            return await self._client.messages.create(**request)
        async with AsyncAnthropic(api_key=self.api_key, timeout=self.timeout, max_retries=0) as client:
            return await client.messages.create(**request)
