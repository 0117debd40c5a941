import pytest

from chessprobe.attacks import (
    BLACK,
    WHITE,
    bishop_attacks,
    iter_squares,
    king_attacks,
    knight_attacks,
    lsb,
    msb,
    pawn_attacks,
    popcount,
    queen_attacks,
    rook_attacks,
    test_bit,
)


def test_knight_from_corner():
    assert knight_attacks(0) == (1 << 10) | (1 << 17)


def test_king_from_corner_has_three_targets():
    assert popcount(king_attacks(0)) == 3


@pytest.mark.parametrize("attack", [knight_attacks, king_attacks])
def test_leaper_attacks_symmetric(attack):
    for a in range(64):
        for b in range(64):
            assert test_bit(attack(a), b) == test_bit(attack(b), a)


def test_pawn_attacks_mirror_between_colours():
    for a in range(64):
        for b in range(64):
            assert test_bit(pawn_attacks(WHITE, a), b) == test_bit(pawn_attacks(BLACK, b), a)


def test_pawn_attacks_point_forward():
    for sq in range(8, 56):
        assert all(t > sq for t in iter_squares(pawn_attacks(WHITE, sq)))
        assert all(t < sq for t in iter_squares(pawn_attacks(BLACK, sq)))


def test_queen_is_union_of_rook_and_bishop():
    occupied = (1 << 20) | (1 << 35) | (1 << 9) | (1 << 50)
    for sq in range(64):
        assert queen_attacks(sq, occupied) == rook_attacks(sq, occupied) | bishop_attacks(sq, occupied)


def test_rook_on_empty_board_same_size_everywhere():
    sizes = {popcount(rook_attacks(sq, 0)) for sq in range(64)}
    assert len(sizes) == 1


def test_bishop_empty_board_symmetric():
    for a in range(64):
        for b in range(64):
            assert test_bit(bishop_attacks(a, 0), b) == test_bit(bishop_attacks(b, 0), a)


def test_rook_stops_at_blocker():
    blocker = 16
    attacks = rook_attacks(0, 1 << blocker)
    assert test_bit(attacks, blocker)
    assert not test_bit(attacks, blocker + 8)
    assert test_bit(rook_attacks(0, 0), blocker + 8)


def test_slider_never_attacks_own_square():
    for sq in range(64):
        assert not test_bit(queen_attacks(sq, 0), sq)


def test_lsb_msb_single_bit():
    for sq in range(64):
        assert lsb(1 << sq) == sq
        assert msb(1 << sq) == sq


def test_lsb_msb_of_two_bits():
    bb = (1 << 5) | (1 << 40)
    assert lsb(bb) == 5
    assert msb(bb) == 40


def test_iter_squares_round_trip():
    bb = (1 << 0) | (1 << 13) | (1 << 63)
    squares = list(iter_squares(bb))
    assert squares == sorted(squares)
    assert sum(1 << s for s in squares) == bb
    assert len(squares) == popcount(bb)


@pytest.mark.parametrize("fn", [lsb, msb])
def test_empty_bitboard_raises(fn):
    with pytest.raises(ValueError):
        fn(0)