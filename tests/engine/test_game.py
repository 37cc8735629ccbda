from __future__ import annotations

import pytest

from cez.engine.board import STARTPOS_FEN, Board
from cez.engine.errors import GameOverError, IllegalMoveRequested
from cez.engine.game import Game, GameStatus, Winner
from cez.engine.move import Move, Square, parse_uci


def _play(game: Game, *ucis: str) -> None:
    for uci in ucis:
        game.apply_move(parse_uci(uci))


def test_new_game_state() -> None:
    game = Game.new()
    assert game.to_fen() == STARTPOS_FEN
    assert game.status is GameStatus.NONE
    assert game.winner is Winner.NONE
    assert game.is_whites_turn
    assert not game.is_game_over
    assert len(game.legal_moves()) == 20


def test_legal_moves_are_unique() -> None:
    moves = Game.new().legal_moves()
    assert len({m.to_uci() for m in moves}) == len(moves)


def test_apply_move_resolves_full_move_and_records_history() -> None:
    game = Game.new()
    applied = game.apply_move(Move(Square.parse("e2"), Square.parse("e4")))
    assert applied.captured_sq is None
    assert game.status is GameStatus.IN_PROGRESS
    assert not game.is_whites_turn
    _play(game, "d7d5", "e4d5")
    assert game.move_stack[-1].captured_sq == Square.parse("d5")
    assert game.move_history_uci() == ["e2e4", "d7d5", "e4d5"]
    assert game.history_notation() == ["e2>4", "d7>5", "<invalid>"]


def test_illegal_move_rejected_without_mutation() -> None:
    game = Game.new()
    before = game.to_fen()
    with pytest.raises(IllegalMoveRequested):
        game.apply_move(parse_uci("e2e5"))
    with pytest.raises(IllegalMoveRequested):
        # Black piece while white is to move
        game.apply_move(parse_uci("e7e5"))
    assert game.to_fen() == before
    assert game.move_stack == []


def test_queen_cannot_pass_through_occupied_squares() -> None:
    game = Game.new()
    _play(game, "e2e4", "e7e5")
    from_d1 = {str(m.to_sq) for m in game.legal_moves_from(Square.parse("d1"))}
    # d2 and e1 are own pieces; only the diagonal opened by e4 is free
    assert from_d1 == {"e2", "f3", "g4", "h5"}

    _play(game, "d1h5", "b8c6")
    from_h5 = {str(m.to_sq) for m in game.legal_moves_from(Square.parse("h5"))}
    assert from_h5 == {
        "g5", "f5", "e5",  # stops on the e5 pawn
        "h6", "h7",  # stops on the h7 pawn
        "g6", "f7",  # stops on the f7 pawn
        "h4", "h3",  # h2 is own pawn
        "g4", "f3", "e2", "d1",
    }
    assert "h8" not in from_h5 and "d5" not in from_h5 and "e8" not in from_h5


def test_fools_mate_is_checkmate_for_black() -> None:
    game = Game.new()
    _play(game, "f2f3", "e7e5", "g2g4", "d8h4")
    assert game.status is GameStatus.CHECKMATE
    assert game.winner is Winner.BLACK
    assert game.is_game_over
    assert game.checkmate() and game.in_check()
    assert game.legal_moves() == []
    assert game.board.generate_legal_moves() == []


def test_terminal_state_is_absorbing() -> None:
    game = Game.new()
    _play(game, "f2f3", "e7e5", "g2g4", "d8h4")
    with pytest.raises(GameOverError):
        game.apply_move(parse_uci("a2a3"))
    assert len(game.move_stack) == 4


def test_stalemate_is_draw() -> None:
    # Black to move: king h8 boxed in by Qf7/Kg6 but not attacked
    game = Game.from_fen("7k/5Q2/6K1/8/8/8/8/8 b - - 0 1")
    assert game.status is GameStatus.STALEMATE
    assert game.winner is Winner.DRAW
    assert game.stalemate() and game.is_draw()
    assert not game.in_check()


def test_stalemate_reached_by_a_move() -> None:
    game = Game.from_fen("7k/8/4Q1K1/8/8/8/8/8 w - - 0 1")
    _play(game, "e6f7")
    assert game.status is GameStatus.STALEMATE
    assert game.winner is Winner.DRAW


def test_checkmate_loaded_from_fen() -> None:
    game = Game.from_fen("7k/6Q1/6K1/8/8/8/8/8 b - - 0 1")
    assert game.status is GameStatus.CHECKMATE
    assert game.winner is Winner.WHITE


def test_check_is_annotated_without_ending_game() -> None:
    game = Game.new()
    _play(game, "e2e4", "f7f5", "d1h5")
    assert game.in_check()
    assert game.status is GameStatus.IN_PROGRESS
    # Every legal reply resolves the check
    for m in game.legal_moves():
        game.board.make_move(m)
        assert not game.board.in_check("b")
        game.board.unmake_move()


def test_fifty_move_rule() -> None:
    game = Game.from_fen("4k3/8/8/8/8/8/8/R3K3 w - - 99 60")
    assert game.status is GameStatus.NONE
    _play(game, "a1a2")
    assert game.board.halfmove_clock == 100
    assert game.status is GameStatus.DRAW_BY_RULE
    assert game.winner is Winner.DRAW
    assert game.legal_moves() == []


def test_pawn_move_resets_fifty_move_count() -> None:
    game = Game.from_fen("4k3/8/8/8/8/8/P7/4K3 w - - 99 60")
    _play(game, "a2a3")
    assert game.status is GameStatus.IN_PROGRESS


def test_threefold_repetition() -> None:
    game = Game.new()
    shuffle = ("g1f3", "g8f6", "f3g1", "f6g8")
    _play(game, *shuffle)
    assert game.status is GameStatus.IN_PROGRESS
    _play(game, *shuffle[:3])
    assert game.status is GameStatus.IN_PROGRESS
    _play(game, shuffle[3])
    assert game.status is GameStatus.DRAW_BY_RULE
    assert game.winner is Winner.DRAW


def test_restart_is_idempotent() -> None:
    game = Game.new()
    _play(game, "f2f3", "e7e5", "g2g4", "d8h4")
    game.restart()
    game.restart()
    assert game.to_fen() == STARTPOS_FEN
    assert game.move_stack == []
    assert game.status is GameStatus.NONE
    assert game.winner is Winner.NONE
    assert len(game.legal_moves()) == 20


def test_promotion_requires_choice_unless_defaulted() -> None:
    game = Game.from_fen("k7/4P3/8/8/8/8/8/4K3 w - - 0 1")
    with pytest.raises(IllegalMoveRequested):
        game.apply_move(parse_uci("e7e8"))
    applied = game.apply_move(parse_uci("e7e8"), default_promotion="q")
    assert applied.promotion == "q"
    assert game.board.piece_at(Square.parse("e8")) == "Q"


def test_legal_moves_by_square_covers_every_move() -> None:
    game = Game.new()
    by_square = game.legal_moves_by_square()
    assert set(by_square) == {Square(c, 6) for c in range(8)} | {
        Square.parse("b1"),
        Square.parse("g1"),
    }
    assert sum(len(v) for v in by_square.values()) == 20


def test_snapshot_is_detached_from_live_board() -> None:
    game = Game.new()
    snap = game.snapshot()
    _play(game, "e2e4")
    assert snap.piece_at(Square.parse("e2")) == "P"
    assert snap.side_to_move == "w"
    assert snap.rows()[6][4] == "P"


def test_no_legal_move_leaves_own_king_attacked_along_a_game() -> None:
    board = Board.from_fen(
        "r3k2r/p1ppqpb1/bn2pnp1/3PN3/1p2P3/2N2Q1p/PPPBBPPP/R3K2R w KQkq - 0 1"
    )
    game = Game(board=board)
    ply = 0
    while not game.is_game_over and ply < 40:
        side = game.board.side_to_move
        moves = game.legal_moves()
        for m in moves:
            game.board.make_move(m)
            assert not game.board.in_check(side), m.to_uci()
            game.board.unmake_move()
        game.apply_move(moves[(ply * 7) % len(moves)])
        # A side left in check is reported before it moves again
        assert game.in_check() == game.board.is_square_attacked(
            game.board.king_square(game.board.side_to_move), side
        )
        ply += 1
