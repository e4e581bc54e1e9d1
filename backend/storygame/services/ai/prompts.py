"""Guide-prompt generation.

The model is asked for a single "Continue the story, but..." constraint for
the next player. Without a working endpoint a deterministic instruction is
built from the latest turn instead.
"""

import httpx
from flask import current_app

from .client import AIUnavailable, call_chat_model, is_configured, truncate

DEFAULT_OPENING = 'A traveler enters a mysterious forest...'


def _guide_messages(story_so_far, last_turn_text, previous_prompt, turn_number, initial_prompt):
    safe_story = truncate(story_so_far or initial_prompt or 'The story begins...', 1200)
    safe_last_turn = truncate(last_turn_text or safe_story or 'the latest beat', 240)
    safe_previous = truncate(previous_prompt or 'No prior prompt', 200)
    return [
        {
            'role': 'system',
            'content': ' '.join([
                'You create challenging constraints for a collaborative storytelling game.',
                'Read the story context and craft ONE concise instruction that makes the next continuation trickier while staying coherent.',
                'The instruction should start with "Continue the story, but..." and must reference concrete details from the provided context.',
                'Keep it under 28 words. Do not write story text, only the instruction.',
            ]),
        },
        {
            'role': 'user',
            'content': '\n'.join([
                f"Initial scene: {truncate(initial_prompt or 'Unknown scene', 200)}",
                f"Story so far ({max(0, turn_number - 1)} turns): {safe_story}",
                f"Last turn text: {safe_last_turn}",
                f"Previous prompt: {safe_previous}",
                'Return one sentence instruction only.',
            ]),
        },
    ]


def fallback_guide_prompt(story_so_far='', last_turn_text='') -> str:
    base = truncate(last_turn_text or story_so_far or 'the current scene', 160)
    return f"Continue the story, but add a twist that complicates {base}."


def generate_guide_prompt(story_so_far='', last_turn_text='', previous_prompt='',
                          turn_number=1, initial_prompt='') -> str:
    fallback = fallback_guide_prompt(story_so_far, last_turn_text)
    if not is_configured():
        return fallback
    try:
        messages = _guide_messages(story_so_far, last_turn_text, previous_prompt, turn_number, initial_prompt)
        guide = call_chat_model(messages, temperature=0.65, max_tokens=90)
    except (AIUnavailable, httpx.HTTPError, ValueError) as exc:
        current_app.logger.warning(f"[ai-fallback] guide prompt turn={turn_number}: {exc}")
        return fallback
    current_app.logger.info(f"[ai] guide prompt turn={turn_number}: {guide}")
    return guide


def generate_initial_prompt(seed=None) -> str:
    """Opening scene for a new game, seeded by the host's text."""
    clean_seed = (seed or '').strip()
    fallback = clean_seed or DEFAULT_OPENING
    if not is_configured():
        return fallback
    messages = [
        {
            'role': 'system',
            'content': ' '.join([
                'You write opening scenes for a collaborative storytelling game.',
                'Write one or two vivid sentences that set a scene other players can continue.',
                'Keep it under 40 words. Return only the scene.',
            ]),
        },
        {'role': 'user', 'content': f"Seed idea: {truncate(clean_seed or DEFAULT_OPENING, 200)}"},
    ]
    try:
        return call_chat_model(messages, temperature=0.8, max_tokens=80)
    except (AIUnavailable, httpx.HTTPError, ValueError) as exc:
        current_app.logger.warning(f"[ai-fallback] opening prompt: {exc}")
        return fallback
