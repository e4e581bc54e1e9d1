"""Story judge.

Returns ``{'players': {name: {creativity, cohesion, prompt_fit, *_note}},
'summary': str}``. Metric names drift between model replies, so synonyms
are folded into those three keys here and nowhere else.
"""

import json
from typing import Dict, List, Optional

import httpx
from flask import current_app

from .client import AIUnavailable, call_chat_model

METRICS = ('creativity', 'cohesion', 'prompt_fit')
METRIC_SYNONYMS = {
    'creativity': ('creativity',),
    'cohesion': ('cohesion', 'continuity'),
    'prompt_fit': ('prompt_fit', 'promptFit', 'prompt_alignment', 'promptAlignment', 'momentum'),
}
UNSCORED_SUMMARY = 'Scoring unavailable'


def _scoring_messages(game, turns: List[dict]):
    turns_text = '\n\n'.join(
        f"Turn {t['order']} by {t['player_name']}\nPrompt: {t.get('prompt_used') or 'No prompt provided.'}\nText: {t['text']}"
        for t in turns
    )
    return [
        {
            'role': 'system',
            'content': ' '.join([
                'You are a fair, concise story-game judge.',
                'Score each player on a 0-100 scale for these metrics:',
                '1) Creativity & Enrichment (original, vivid, on-tone additions).',
                '2) Cohesion & Continuity (respects existing context, no contradictions).',
                '3) Prompt Fit (explicitly weaves in the provided prompt/constraint).',
                'Baseline is low: start each metric at 20; raise into 40-60 for moderate evidence; 70-85 for strong evidence; 86-100 only for excellent contributions.',
                'If a turn is under 15 words or merely restates prior text, cap all scores at 35-45.',
                'Prompt Fit: >60 only if the text clearly uses the provided prompt; cap at 35 if the prompt is ignored or contradicted.',
                'Use any integer 0-100; avoid rounding to the nearest 10.',
                'Return JSON only: { "players": { "Name": { "creativity": n, "creativity_note": "1 sentence", "cohesion": n, "cohesion_note": "1 sentence", "prompt_fit": n, "prompt_fit_note": "1 sentence" }, ... }, "summary": "one-line overall" }',
                'Keep summary under 12 words. Do not add any text outside the JSON.',
            ]),
        },
        {
            'role': 'user',
            'content': '\n\n'.join([
                'Evaluate each player based on their contributions.',
                f"Initial scene: {game.initial_prompt or 'Unknown opening'}",
                'Here is the story so far (prompt then text for each turn):',
                turns_text or 'No turns.',
            ]),
        },
    ]


def parse_judgement(raw: str) -> Optional[dict]:
    """Parse the judge's reply, tolerating prose around the JSON object."""
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        pass
    first, last = raw.find('{'), raw.rfind('}')
    if first != -1 and last > first:
        try:
            return json.loads(raw[first:last + 1])
        except ValueError:
            return None
    return None


def _nudge(score: float, key: str) -> float:
    # Spread round multiples of ten so tied players rarely tie exactly.
    if score % 10 != 0:
        return score
    offset = -2 if sum(ord(ch) for ch in str(key)) % 2 == 0 else 2
    return max(0, min(100, score + offset))


def normalize_scores(parsed: dict, id_by_name: Dict[str, str]) -> dict:
    players = {}
    for name, metrics in (parsed.get('players') or {}).items():
        if not isinstance(metrics, dict):
            continue
        entry = {}
        for metric, names in METRIC_SYNONYMS.items():
            raw_value = next((metrics[n] for n in names if metrics.get(n) is not None), None)
            try:
                value = max(0.0, min(100.0, float(raw_value)))
            except (TypeError, ValueError):
                value = 0.0
            entry[metric] = _nudge(value, id_by_name.get(name, name))
            note = next((metrics[f"{n}_note"] for n in names if metrics.get(f"{n}_note")), None)
            if note:
                entry[f"{metric}_note"] = str(note)
        players[name] = entry
    return {'players': players, 'summary': str(parsed.get('summary') or 'Game finished')}


def placeholder_scores(game) -> dict:
    players = {
        p['name']: {metric: 0 for metric in METRICS}
        for p in (game.players or []) if p.get('name')
    }
    return {'players': players, 'summary': UNSCORED_SUMMARY, 'unscored': True}


def score_game(game, turns: List[dict]) -> dict:
    id_by_name = {p.get('name'): p.get('id') for p in (game.players or [])}
    try:
        raw = call_chat_model(_scoring_messages(game, turns), temperature=0.25, max_tokens=320)
    except (AIUnavailable, httpx.HTTPError, ValueError) as exc:
        current_app.logger.warning(f"[ai-fallback] scoring game={game.id}: {exc}")
        return placeholder_scores(game)

    parsed = parse_judgement(raw)
    if not isinstance(parsed, dict):
        current_app.logger.warning(f"[ai-fallback] scoring game={game.id}: unparsable reply")
        return placeholder_scores(game)
    return normalize_scores(parsed, id_by_name)
