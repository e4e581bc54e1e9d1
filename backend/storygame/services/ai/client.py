from typing import Dict, List

import httpx
from flask import current_app


class AIUnavailable(Exception):
    """The completion endpoint is unconfigured or returned nothing usable."""


def is_configured() -> bool:
    return bool(current_app.config.get('AI_API_KEY'))


def truncate(text, limit: int) -> str:
    if not text:
        return ''
    if len(text) <= limit:
        return text
    return f"{text[:limit - 3]}..."


def call_chat_model(messages: List[Dict[str, str]], temperature: float = 0.5, max_tokens: int = 100) -> str:
    """POST a chat completion and return the trimmed reply text.

    Raises AIUnavailable without a key or on an empty reply; httpx errors
    (timeouts, HTTP status, connection) propagate to the caller.
    """
    cfg = current_app.config
    api_key = cfg.get('AI_API_KEY')
    if not api_key:
        raise AIUnavailable('AI_API_KEY is not configured')

    base_url = str(cfg.get('AI_BASE_URL', '')).rstrip('/')
    response = httpx.post(
        f"{base_url}/chat/completions",
        json={
            'model': cfg.get('AI_MODEL'),
            'messages': messages,
            'temperature': temperature,
            'max_tokens': max_tokens,
        },
        headers={
            'Content-Type': 'application/json',
            'Authorization': f"Bearer {api_key}",
        },
        timeout=float(cfg.get('AI_TIMEOUT_SEC', 10)),
    )
    response.raise_for_status()

    choices = response.json().get('choices') or []
    content = ''
    if choices:
        content = ((choices[0] or {}).get('message') or {}).get('content') or ''
    content = content.strip()
    if not content:
        raise AIUnavailable('Empty completion from model')
    return content
