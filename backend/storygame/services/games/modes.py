"""Game modes and how loosely-typed creation parameters are clamped.

| mode   | player cap            | turn duration          | max turns       |
|--------|-----------------------|------------------------|-----------------|
| multi  | 2..7 (default 3)      | 30..600 (default 60)   | 1..50 (default 5)  |
| single | 1                     | 30..600 (default 60)   | 1..50 (default 5)  |
| rapid  | 1..7 (default 2)      | 60, shrinking per turn | 1..50 (default 50) |

Multi games start in a lobby and need host approval to join; single and
rapid games start immediately.
"""

import math
from collections import namedtuple

MODE_MULTI = 'multi'
MODE_SINGLE = 'single'
MODE_RAPID = 'rapid'

DURATION_RANGE = (30, 600)
DEFAULT_DURATION = 60
TURNS_RANGE = (1, 50)
MAX_PLAYERS_CEILING = 7

RAPID_INITIAL_DURATION = 60
RAPID_DECREMENT = 5
RAPID_MIN_DURATION = 20

ModePolicy = namedtuple('ModePolicy', [
    'name', 'min_players', 'players_range', 'default_max_players',
    'default_max_turns', 'fixed_duration', 'requires_approval', 'has_lobby',
])

POLICIES = {
    MODE_MULTI: ModePolicy(MODE_MULTI, 2, (2, MAX_PLAYERS_CEILING), 3, 5, None, True, True),
    MODE_SINGLE: ModePolicy(MODE_SINGLE, 1, (1, 1), 1, 5, None, False, False),
    MODE_RAPID: ModePolicy(MODE_RAPID, 1, (1, MAX_PLAYERS_CEILING), 2, 50, RAPID_INITIAL_DURATION, False, False),
}


def clamp(value, low, high, fallback):
    """Clamp a loosely-typed number into [low, high]; non-numbers give ``fallback``."""
    if value is None or isinstance(value, bool):
        return fallback
    try:
        num = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(num):
        return fallback
    return int(min(high, max(low, num)))


def resolve_mode(value) -> str:
    mode = str(value or '').strip().lower()
    return mode if mode in POLICIES else MODE_MULTI


def policy_for(mode) -> ModePolicy:
    return POLICIES[resolve_mode(mode)]


def min_players_to_start(mode, configured_min=None) -> int:
    policy = policy_for(mode)
    if policy.name != MODE_MULTI or configured_min is None:
        return policy.min_players
    return max(1, int(configured_min))


def resolve_settings(mode, turn_duration_seconds=None, max_turns=None, max_players=None,
                     configured_min=None) -> dict:
    """Clamp creation parameters for ``mode``.

    ``configured_min`` (the MIN_PLAYERS setting) may lower the multiplayer
    cap floor to 1.
    """
    policy = policy_for(mode)
    low, high = policy.players_range
    if policy.name == MODE_MULTI:
        low = max(1, min(low, min_players_to_start(mode, configured_min)))
    if policy.fixed_duration is not None:
        duration = policy.fixed_duration
    else:
        duration = clamp(turn_duration_seconds, *DURATION_RANGE, DEFAULT_DURATION)
    return {
        'mode': policy.name,
        'turn_duration_seconds': duration,
        'max_turns': clamp(max_turns, *TURNS_RANGE, policy.default_max_turns),
        'max_players': clamp(max_players, low, high, policy.default_max_players),
        'requires_approval': policy.requires_approval,
        'has_lobby': policy.has_lobby,
    }


def decayed_duration(mode, current) -> int:
    """Rapid games lose a few seconds per committed turn, down to a floor."""
    if resolve_mode(mode) != MODE_RAPID:
        return current
    return max(RAPID_MIN_DURATION, (current or RAPID_INITIAL_DURATION) - RAPID_DECREMENT)
