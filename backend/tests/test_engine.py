import copy
import math

import pytest

from chronojam.game import engine
from chronojam.game.errors import InvalidTransition, NotAllowed, NotFound, ValidationError
from chronojam.game.models import Points

T0 = 1_000_000


def _r(state, i):
    return state.rounds[i]


def test_create_lobby_defaults():
    state = engine.create_lobby("room-9", T0)
    assert state.lifecycle == "lobby"
    assert state.phase == "LOBBY"
    assert state.phase_ends_at == T0
    assert state.rounds == []


def test_assign_rounds_dedups_and_is_lobby_only(rounds, running):
    state = engine.create_lobby("room-2", T0)
    engine.assign_rounds(state, [rounds[0], rounds[0], rounds[1]], T0 + 1)
    assert [r.id for r in state.rounds] == ["r1", "r2"]
    assert state.updated_at == T0 + 1

    with pytest.raises(InvalidTransition):
        engine.assign_rounds(running, rounds, T0)


def test_join_assigns_colors_and_upserts(lobby):
    engine.join(lobby, "p2", "  Player   Two ", T0 + 10)
    again = engine.join(lobby, "p1", "Renamed", T0 + 20)

    assert [p.id for p in lobby.participants] == ["p1", "p2"]
    assert lobby.participants[1].name == "Player Two"
    assert lobby.participants[0].color != lobby.participants[1].color
    assert again.name == "Renamed"
    assert again.last_seen_at == T0 + 20
    assert again.joined_at == T0


@pytest.mark.parametrize("name", ["", "   ", "<b>", "bad\x07name", None])
def test_join_rejects_bad_names(lobby, name):
    with pytest.raises(ValidationError):
        engine.join(lobby, "p2", name, T0)
    assert len(lobby.participants) == 1


def test_join_truncates_long_names(lobby):
    p = engine.join(lobby, "p2", "x" * 100, T0)
    assert len(p.name) == engine.MAX_NAME_LENGTH


def test_heartbeat_and_leave(lobby):
    assert engine.heartbeat(lobby, "p1", T0 + 500).last_seen_at == T0 + 500
    with pytest.raises(NotFound):
        engine.heartbeat(lobby, "ghost", T0)

    assert engine.leave(lobby, "p1", T0 + 600)
    assert not engine.leave(lobby, "p1", T0 + 700)
    assert lobby.participants == []


def test_start_game_enters_first_listen(running):
    assert running.lifecycle == "running"
    assert running.phase == "LISTEN"
    assert running.current_round_index == 0
    assert running.phase_started_at == T0
    assert running.phase_ends_at == T0 + 45_000
    assert running.allowed_player_ids == ["p1"]
    assert running.scores == {"p1": 0}


def test_start_game_requires_rounds_and_players(rounds):
    empty = engine.create_lobby("room-3", T0)
    engine.join(empty, "p1", "Solo", T0)
    with pytest.raises(InvalidTransition):
        engine.start_game(empty, T0)

    nobody = engine.create_lobby("room-4", T0)
    engine.assign_rounds(nobody, rounds, T0)
    with pytest.raises(InvalidTransition):
        engine.start_game(nobody, T0)
    assert nobody.lifecycle == "lobby"


def test_start_game_only_once(running):
    with pytest.raises(InvalidTransition):
        engine.start_game(running, T0 + 1)


def test_perfect_round_scores_track_artist_timeline_and_speed(running):
    r1 = _r(running, 0)
    engine.submit_guess(running, "p1", r1.track_id, r1.artist_id, T0 + 5_000)
    engine.submit_timeline(running, "p1", 2, T0 + 44_000)

    assert engine.advance_phase(running, T0 + 45_000)
    assert running.phase == "REVEAL"
    assert running.phase_ends_at == T0 + 53_000

    breakdown = running.round_breakdowns["r1"].players["p1"]
    assert breakdown.points == Points(track=25, artist=25, timeline=25, speed=23, total=98)
    assert running.scores["p1"] == 98
    assert running.timeline_round_ids == ["r1"]


def test_wrong_slot_and_slower_guess(running):
    r1 = _r(running, 0)
    engine.submit_guess(running, "p1", r1.track_id, r1.artist_id, T0 + 10_000)
    engine.submit_timeline(running, "p1", 1, T0 + 11_000)
    engine.advance_phase(running, T0 + 45_000)

    breakdown = running.round_breakdowns["r1"].players["p1"]
    assert not breakdown.timeline_correct
    assert breakdown.points.speed == 20
    assert breakdown.points.total == 70


def test_wrong_artist_gets_no_speed_bonus(running):
    r1, r2 = _r(running, 0), _r(running, 1)
    engine.submit_guess(running, "p1", r1.track_id, r2.artist_id, T0 + 1_000)
    engine.submit_timeline(running, "p1", 2, T0 + 1_000)
    engine.advance_phase(running, T0 + 45_000)

    points = running.round_breakdowns["r1"].players["p1"].points
    assert points == Points(track=25, artist=0, timeline=25, speed=0, total=50)


def test_players_without_submissions_score_zero(lobby):
    engine.join(lobby, "p2", "Quiet", T0)
    engine.start_game(lobby, T0)
    engine.advance_phase(lobby, T0 + 45_000)
    assert lobby.round_breakdowns["r1"].players["p2"].points.total == 0
    assert lobby.scores == {"p1": 0, "p2": 0}


def test_advance_before_deadline_is_a_noop(running):
    before = copy.deepcopy(running)
    assert not engine.advance_phase(running, T0 + 44_999)
    assert running == before


def test_advance_is_idempotent_for_the_same_time(running):
    assert engine.advance_phase(running, T0 + 45_000)
    after = copy.deepcopy(running)
    assert not engine.advance_phase(running, T0 + 45_000)
    assert running == after


def test_advance_ignores_lobby_and_finished_rooms(lobby):
    assert not engine.advance_phase(lobby, T0 + 10**9)
    assert lobby.phase == "LOBBY"


def test_full_walk_through_two_rounds(rounds):
    state = engine.create_lobby("room-5", T0)
    engine.assign_rounds(state, rounds[:2], T0)
    engine.join(state, "p1", "Solo", T0)
    engine.start_game(state, T0)

    phases = [state.phase]
    now = T0
    while state.lifecycle == "running":
        now = state.phase_ends_at
        assert engine.advance_phase(state, now)
        phases.append(state.phase)

    assert phases == ["LISTEN", "REVEAL", "INTERMISSION", "LISTEN", "REVEAL", "FINAL"]
    assert state.lifecycle == "finished"
    assert state.current_round_index == 2
    assert state.timeline_round_ids == ["r1", "r2"]
    assert not engine.advance_phase(state, now + 10**6)


def test_tick_catches_up_on_missed_deadlines(running):
    steps = engine.tick(running, T0 + 60_000)
    assert steps == 3
    assert running.phase == "LISTEN"
    assert running.current_round_index == 1
    assert running.phase_started_at == T0 + 58_000
    assert running.phase_ends_at == T0 + 103_000
    assert engine.tick(running, T0 + 60_000) == 0


def test_tick_respects_max_steps(running):
    assert engine.tick(running, T0 + 10**9, max_steps=2) == 2
    assert running.phase == "INTERMISSION"


def test_custom_durations(lobby):
    durations = engine.PhaseDurations(listen_ms=1_000, reveal_ms=2_000, intermission_ms=3_000)
    engine.start_game(lobby, T0, durations)
    assert lobby.phase_ends_at == T0 + 1_000
    engine.advance_phase(lobby, T0 + 1_000, durations)
    assert lobby.phase_ends_at == T0 + 3_000


def test_latecomer_cannot_join_or_submit(running):
    r1 = _r(running, 0)
    before = copy.deepcopy(running)
    with pytest.raises(NotAllowed):
        engine.join(running, "late", "Latecomer", T0 + 1)
    with pytest.raises(NotAllowed):
        engine.submit_guess(running, "late", r1.track_id, r1.artist_id, T0 + 1)
    assert running == before


def test_known_player_can_rejoin_while_running(running):
    engine.leave(running, "p1", T0 + 1)
    engine.join(running, "p1", "Back Again", T0 + 2)
    assert [p.id for p in running.participants] == ["p1"]


def test_submissions_close_at_the_deadline(running):
    r1 = _r(running, 0)
    before = copy.deepcopy(running)
    with pytest.raises(InvalidTransition):
        engine.submit_guess(running, "p1", r1.track_id, r1.artist_id, T0 + 45_000)
    with pytest.raises(InvalidTransition):
        engine.submit_timeline(running, "p1", 0, T0 + 45_000)
    assert running == before


def test_submissions_rejected_outside_listen(running):
    r1 = _r(running, 0)
    engine.advance_phase(running, T0 + 45_000)
    with pytest.raises(InvalidTransition):
        engine.submit_guess(running, "p1", r1.track_id, r1.artist_id, T0 + 46_000)


def test_submission_for_another_round_is_rejected(running):
    with pytest.raises(InvalidTransition):
        engine.submit_guess(running, "p1", "t", "a", T0 + 1, round_id="r2")
    engine.submit_guess(running, "p1", "t", "a", T0 + 1, round_id="r1")
    assert ("p1", "r1") in running.guess_submissions


@pytest.mark.parametrize("index", [math.nan, math.inf, "2", None, True])
def test_invalid_insert_index_is_rejected(running, index):
    before = copy.deepcopy(running)
    with pytest.raises(ValidationError):
        engine.submit_timeline(running, "p1", index, T0 + 1)
    assert running == before


def test_insert_index_is_clamped_to_the_board(running):
    assert engine.submit_timeline(running, "p1", 99, T0 + 1).insert_index == 2
    assert engine.submit_timeline(running, "p1", -4, T0 + 2).insert_index == 0
    assert engine.submit_timeline(running, "p1", 1.7, T0 + 3).insert_index == 1


def test_guess_requires_ids(running):
    with pytest.raises(ValidationError):
        engine.submit_guess(running, "p1", " ", "a", T0 + 1)


def test_last_submission_wins(running):
    r1 = _r(running, 0)
    engine.submit_guess(running, "p1", "wrong", "wrong", T0 + 1_000)
    engine.submit_guess(running, "p1", r1.track_id, r1.artist_id, T0 + 20_000)
    engine.advance_phase(running, T0 + 45_000)

    points = running.round_breakdowns["r1"].players["p1"].points
    assert points.track == 25 and points.artist == 25
    assert points.speed == 15


@pytest.mark.parametrize("index", [2, 3])
def test_same_year_fits_either_side_of_an_equal_entry(running, index):
    # round 1 (2019) is on the board by round 2, which is also 2019
    engine.tick(running, T0 + 58_000)
    assert running.phase == "LISTEN" and running.current_round_index == 1

    engine.submit_timeline(running, "p1", index, T0 + 60_000)
    engine.advance_phase(running, running.phase_ends_at)
    assert running.round_breakdowns["r2"].players["p1"].timeline_correct


def test_skip_phase_moves_on_immediately(running):
    engine.skip_phase(running, T0 + 3_000)
    assert running.phase == "REVEAL"
    assert running.phase_started_at == T0 + 3_000
    assert "r1" in running.round_breakdowns

    engine.skip_phase(running, T0 + 4_000)
    assert running.phase == "INTERMISSION"


def test_skip_phase_requires_a_running_game(lobby):
    with pytest.raises(InvalidTransition):
        engine.skip_phase(lobby, T0)


def test_snapshot_hides_answers_while_listening(running):
    r1 = _r(running, 0)
    engine.submit_guess(running, "p1", r1.track_id, r1.artist_id, T0 + 1_000)
    snap = engine.snapshot(running, T0 + 5_000)

    assert snap["phase"] == "LISTEN"
    assert snap["remainingMs"] == 40_000
    assert snap["currentRound"]["id"] == "r1"
    assert "trackId" not in snap["currentRound"]
    assert "year" not in snap["currentRound"]
    assert snap["submittedPlayerIds"] == {"guess": ["p1"], "timeline": []}
    assert [e["id"] for e in snap["timeline"]["entries"]] == ["anchor-1980", "anchor-2000"]

    engine.advance_phase(running, T0 + 45_000)
    revealed = engine.snapshot(running, T0 + 45_000)
    assert revealed["currentRound"]["trackId"] == r1.track_id
    assert revealed["currentRound"]["year"] == 2019
    assert revealed["roundBreakdowns"]["r1"]["players"]["p1"]["points"]["total"] > 0


def test_snapshot_in_lobby_has_no_current_round(lobby):
    snap = engine.snapshot(lobby, T0)
    assert snap["currentRound"] is None
    assert snap["remainingMs"] == 0
    assert snap["roundCount"] == 5
    assert snap["participants"][0]["name"] == "Player One"


def test_scenario_wrong_slot_keeps_speed_bonus(running):
    r1 = _r(running, 0)
    engine.submit_guess(running, "p1", r1.track_id, r1.artist_id, T0 + 5_000)
    engine.submit_timeline(running, "p1", 1, T0 + 44_000)
    engine.advance_phase(running, T0 + 45_000)

    breakdown = running.round_breakdowns["r1"].players["p1"]
    assert not breakdown.timeline_correct
    assert breakdown.points == Points(track=25, artist=25, timeline=0, speed=23, total=73)


def test_scores_are_the_sum_of_round_totals(rounds):
    state = engine.create_lobby("room-6", T0)
    engine.assign_rounds(state, rounds[:2], T0)
    engine.join(state, "p1", "Ada", T0)
    engine.join(state, "p2", "Grace", T0)
    engine.start_game(state, T0)
    r1, r2 = state.rounds

    # round 1: p1 wrong slot, p2 perfect but slow
    engine.submit_guess(state, "p1", r1.track_id, r1.artist_id, T0 + 5_000)
    engine.submit_timeline(state, "p1", 1, T0 + 6_000)
    engine.submit_guess(state, "p2", r1.track_id, r1.artist_id, T0 + 30_000)
    engine.submit_timeline(state, "p2", 2, T0 + 31_000)
    engine.tick(state, T0 + 58_000)
    assert state.phase == "LISTEN" and state.current_round_index == 1
    listen2 = state.phase_started_at

    # round 2: p1 wrong artist, p2 track only
    engine.submit_guess(state, "p1", r2.track_id, r1.artist_id, listen2 + 1_000)
    engine.submit_timeline(state, "p1", 3, listen2 + 2_000)
    engine.submit_guess(state, "p2", r2.track_id, "nope", listen2 + 3_000)
    engine.tick(state, state.phase_ends_at)

    players = {
        pid: [state.round_breakdowns[rid].players[pid].points.total for rid in ("r1", "r2")]
        for pid in ("p1", "p2")
    }
    assert players == {"p1": [73, 50], "p2": [85, 25]}
    for pid, totals in players.items():
        assert state.scores[pid] == sum(totals)
    assert state.lifecycle == "running" and state.phase == "REVEAL"


def test_update_preload_records_readiness(lobby):
    ready = engine.update_preload(lobby, "p1", True, False, " abc123 ", T0 + 10)
    assert ready.game_pack_loaded and not ready.autocomplete_loaded
    assert ready.game_pack_hash == "abc123"

    # same report again keeps the first timestamp
    again = engine.update_preload(lobby, "p1", True, False, "abc123", T0 + 20)
    assert again.updated_at == T0 + 10

    engine.update_preload(lobby, "p1", True, True, "abc123", T0 + 30)
    snap = engine.snapshot(lobby, T0 + 30)
    assert snap["preloadReadiness"]["p1"] == {
        "playerId": "p1",
        "gamePackLoaded": True,
        "autocompleteLoaded": True,
        "gamePackHash": "abc123",
        "updatedAt": T0 + 30,
    }


def test_update_preload_rejects_unknown_players(lobby):
    with pytest.raises(NotFound):
        engine.update_preload(lobby, "ghost", True, True, "", T0)
    with pytest.raises(ValidationError):
        engine.update_preload(lobby, None, True, True, "", T0)
    assert lobby.preload_readiness == {}


def test_preload_is_cleared_on_leave_and_start(lobby):
    engine.join(lobby, "p2", "Grace", T0)
    engine.update_preload(lobby, "p1", True, True, "h", T0)
    engine.update_preload(lobby, "p2", True, True, "h", T0)

    engine.leave(lobby, "p2", T0 + 1)
    assert list(lobby.preload_readiness) == ["p1"]

    engine.start_game(lobby, T0 + 2)
    assert lobby.preload_readiness == {}


def test_reset_lobby_after_a_finished_game(running):
    r1 = _r(running, 0)
    engine.submit_guess(running, "p1", r1.track_id, r1.artist_id, T0 + 1_000)
    engine.tick(running, T0 + 10**7, max_steps=50)
    assert running.lifecycle == "finished"

    engine.reset_lobby(running, T0 + 10**7)
    assert running.lifecycle == "lobby"
    assert running.phase == "LOBBY"
    assert running.current_round_index == 0
    assert running.scores == {}
    assert running.round_breakdowns == {}
    assert running.timeline_round_ids == []
    assert running.guess_submissions == {}
    assert [p.id for p in running.participants] == ["p1"]
    assert len(running.rounds) == 5

    # the lobby accepts new players again and a new game can start
    engine.join(running, "late", "Latecomer", T0 + 10**7)
    engine.start_game(running, T0 + 10**7)
    assert running.allowed_player_ids == ["p1", "late"]
