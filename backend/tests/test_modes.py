from storygame.services.games import modes


def test_clamp_numbers_and_fallbacks():
    assert modes.clamp('45', 30, 600, 60) == 45
    assert modes.clamp(5, 30, 600, 60) == 30
    assert modes.clamp(9999, 30, 600, 60) == 600
    assert modes.clamp(None, 30, 600, 60) == 60
    assert modes.clamp('soon', 30, 600, 60) == 60
    assert modes.clamp(float('inf'), 30, 600, 60) == 60
    assert modes.clamp(float('nan'), 1, 50, 5) == 5
    assert modes.clamp(True, 1, 50, 5) == 5


def test_multi_defaults():
    settings = modes.resolve_settings('multi')
    assert settings == {
        'mode': 'multi',
        'turn_duration_seconds': 60,
        'max_turns': 5,
        'max_players': 3,
        'requires_approval': True,
        'has_lobby': True,
    }


def test_single_is_always_one_player():
    settings = modes.resolve_settings('single', turn_duration_seconds=90, max_players=6)
    assert settings['max_players'] == 1
    assert settings['turn_duration_seconds'] == 90
    assert settings['requires_approval'] is False
    assert settings['has_lobby'] is False


def test_rapid_ignores_requested_duration():
    settings = modes.resolve_settings('rapid', turn_duration_seconds=300)
    assert settings['turn_duration_seconds'] == modes.RAPID_INITIAL_DURATION
    assert settings['max_turns'] == 50
    assert settings['max_players'] == 2
    assert settings['requires_approval'] is False


def test_unknown_mode_falls_back_to_multi():
    assert modes.resolve_mode('co-op') == 'multi'
    assert modes.resolve_mode(' RAPID ') == 'rapid'
    assert modes.resolve_settings(None)['mode'] == 'multi'


def test_turns_and_duration_are_clamped():
    settings = modes.resolve_settings('multi', turn_duration_seconds=10, max_turns=500, max_players=99)
    assert settings['turn_duration_seconds'] == 30
    assert settings['max_turns'] == 50
    assert settings['max_players'] == modes.MAX_PLAYERS_CEILING


def test_min_players_setting_lowers_multi_cap_floor():
    assert modes.resolve_settings('multi', max_players=1)['max_players'] == 2
    assert modes.resolve_settings('multi', max_players=1, configured_min=1)['max_players'] == 1
    assert modes.min_players_to_start('multi', 2) == 2
    assert modes.min_players_to_start('multi', 1) == 1
    assert modes.min_players_to_start('single', 4) == 1


def test_rapid_duration_decays_to_floor():
    assert modes.decayed_duration('rapid', 60) == 55
    assert modes.decayed_duration('rapid', 22) == modes.RAPID_MIN_DURATION
    assert modes.decayed_duration('rapid', modes.RAPID_MIN_DURATION) == modes.RAPID_MIN_DURATION
    assert modes.decayed_duration('multi', 60) == 60
