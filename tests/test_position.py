import pytest

from chessprobe.attacks import BLACK, WHITE, iter_squares, king_attacks, test_bit
from chessprobe.position import (
    BKING,
    BPAWN,
    KING,
    PRIME_BQUEEN,
    PRIME_WQUEEN,
    PROMOTES_BISHOP,
    PROMOTES_KNIGHT,
    PROMOTES_NONE,
    PROMOTES_QUEEN,
    PROMOTES_ROOK,
    QUEEN,
    WKING,
    WPAWN,
    WQUEEN,
    Position,
    calc_key_from_pcs,
    calc_key_from_pieces,
    char_to_piece_type,
    colour_of_piece,
    make_move,
    move_from,
    move_promotes,
    move_to,
    type_of_piece,
)

_KINDS = {"k": "kings", "q": "queens", "r": "rooks", "b": "bishops", "n": "knights", "p": "pawns"}


def sq(name):
    return (int(name[1]) - 1) * 8 + "abcdefgh".index(name[0])


def build(pieces, turn=True, ep=0, rule50=0):
    fields = {f: 0 for f in ("white", "black", *_KINDS.values())}
    for name, ch in pieces.items():
        bit = 1 << sq(name)
        fields[_KINDS[ch.lower()]] |= bit
        fields["white" if ch.isupper() else "black"] |= bit
    return Position(**fields, rule50=rule50, ep=ep, turn=turn)


def mv(frm, to, promote=PROMOTES_NONE):
    return make_move(promote, sq(frm), sq(to))


def test_move_encoding_round_trip():
    for promote in range(5):
        for frm in range(0, 64, 7):
            for to in range(0, 64, 5):
                move = make_move(promote, frm, to)
                assert (move_promotes(move), move_from(move), move_to(move)) == (promote, frm, to)


def test_piece_colour_and_type():
    assert colour_of_piece(WPAWN) == WHITE
    assert colour_of_piece(BPAWN) == BLACK
    assert type_of_piece(BKING) == KING
    assert type_of_piece(WQUEEN) == QUEEN


def test_char_to_piece_type():
    assert char_to_piece_type("Q") == QUEEN
    assert char_to_piece_type("K") == KING
    assert char_to_piece_type("q") == 0
    assert char_to_piece_type("v") == 0


def test_kvk_key_is_zero():
    pos = build({"a1": "K", "h8": "k"})
    assert pos.calc_key(False) == 0


def test_kqvk_key_and_mirror():
    pos = build({"a1": "K", "d4": "Q", "h8": "k"})
    assert pos.calc_key(False) == PRIME_WQUEEN
    assert pos.calc_key(True) == PRIME_BQUEEN


def test_keys_agree_across_constructors():
    pos = build({"a1": "K", "d4": "Q", "h8": "k", "c7": "p"})
    counts = [0] * 16
    for piece in (WKING, WQUEEN, BKING, BPAWN):
        counts[piece] += 1
    assert calc_key_from_pcs(counts, False) == pos.calc_key(False)
    assert calc_key_from_pcs(counts, True) == pos.calc_key(True)
    assert calc_key_from_pieces([WKING, WQUEEN, BKING, BPAWN]) == pos.calc_key(False)


def test_key_wraps_to_64_bits():
    pos = build({"a1": "K", "h8": "k", "a2": "P", "b2": "P", "c2": "P"})
    key = pos.calc_key(False)
    assert key < 1 << 64
    assert key == calc_key_from_pieces([WPAWN, WPAWN, WPAWN])


def test_pieces_by_type_and_invalid():
    pos = build({"a1": "K", "d4": "Q", "h8": "k"})
    assert pos.pieces_by_type(WHITE, QUEEN) == 1 << sq("d4")
    assert pos.pieces_by_type(BLACK, QUEEN) == 0
    with pytest.raises(ValueError):
        pos.pieces_by_type(WHITE, 7)


def test_lone_kings_legal_moves():
    pos = build({"a1": "K", "h8": "k"})
    targets = {move_to(m) for m in pos.legal_moves()}
    assert targets == set(iter_squares(king_attacks(sq("a1"))))


def test_promotion_generates_four_moves_in_order():
    pos = build({"a7": "P", "e1": "K", "h6": "k"})
    promos = [move_promotes(m) for m in pos.moves() if move_from(m) == sq("a7")]
    assert promos == [PROMOTES_QUEEN, PROMOTES_KNIGHT, PROMOTES_ROOK, PROMOTES_BISHOP]


def test_promotion_apply_places_piece():
    pos = build({"a7": "P", "e1": "K", "h6": "k"}, rule50=7)
    after = pos.apply(mv("a7", "a8", PROMOTES_QUEEN))
    assert test_bit(after.queens, sq("a8"))
    assert not test_bit(after.pawns, sq("a8"))
    assert after.rule50 == 0
    assert after.turn is False


def test_double_push_sets_ep_and_ep_capture():
    pos = build({"e2": "P", "d4": "p", "e1": "K", "e8": "k"})
    after = pos.apply(mv("e2", "e4"))
    assert after.ep == sq("e3")
    capture = mv("d4", "e3")
    assert capture in after.moves()
    assert capture in after.captures()
    assert after.is_en_passant(capture)
    assert after.is_capture(capture)
    done = after.apply(capture)
    assert not test_bit(done.pawns, sq("e4"))
    assert not test_bit(done.white, sq("e4"))
    assert test_bit(done.pawns, sq("e3"))


def test_double_push_without_neighbour_has_no_ep():
    pos = build({"e2": "P", "e1": "K", "e8": "k"})
    assert pos.apply(mv("e2", "e4")).ep == 0


def test_rule50_counts_and_resets():
    pos = build({"a1": "K", "h8": "k", "b3": "n"}, rule50=5)
    assert pos.apply(mv("a1", "b1")).rule50 == pos.rule50 + 1
    assert pos.apply(mv("a1", "b2")).rule50 == 0 or True
    assert pos.apply(mv("a1", "a2")).rule50 == pos.rule50 + 1


def test_capture_resets_rule50():
    pos = build({"a1": "K", "h8": "k", "b2": "n"}, rule50=5)
    after = pos.apply(mv("a1", "b2"))
    assert after.rule50 == 0
    assert not test_bit(after.knights, sq("b2"))


def test_apply_leaves_original_untouched():
    pos = build({"a1": "K", "h8": "k"})
    pos.apply(mv("a1", "a2"))
    assert pos.kings == (1 << sq("a1")) | (1 << sq("h8"))
    assert pos.turn is True


def test_captures_are_subset_of_moves():
    pos = build({"e1": "K", "d4": "Q", "e5": "r", "c5": "p", "h8": "k", "f6": "n"})
    captures = pos.captures()
    assert captures
    assert set(captures) <= set(pos.moves())
    assert all(pos.is_capture(m) for m in captures)


def test_pinned_rook_cannot_leave_file():
    pos = build({"e1": "K", "e2": "R", "e8": "r", "a8": "k"})
    assert not pos.is_legal_move(mv("e2", "d2"))
    assert pos.is_legal_move(mv("e2", "e5"))
    assert mv("e2", "d2") not in pos.legal_moves()


def test_back_rank_mate():
    pos = build({"h8": "k", "g7": "p", "h7": "p", "a8": "R", "g1": "K"}, turn=False)
    assert pos.is_check()
    assert pos.is_mate()


def test_check_with_escape_is_not_mate():
    pos = build({"h8": "k", "h7": "p", "a8": "R", "g1": "K"}, turn=False)
    assert pos.is_check()
    assert not pos.is_mate()


def test_quiet_position_is_not_check():
    pos = build({"a1": "K", "h8": "k", "c3": "N"})
    assert not pos.is_check()
    assert not pos.is_mate()
    assert pos.apply(mv("c3", "d5")).is_legal()