"""Bitboard primitives and attack generation for a 64-square board.

Squares are numbered 0 (a1) to 63 (h8). Colours follow the probing
convention: 1 is white and 0 is black.
"""

from __future__ import annotations

from collections.abc import Iterator

WHITE = 1
BLACK = 0

MASK64 = (1 << 64) - 1

_KNIGHT_DELTAS = ((1, 2), (2, 1), (2, -1), (1, -2), (-1, -2), (-2, -1), (-2, 1), (-1, 2))
_KING_DELTAS = ((1, 0), (1, 1), (0, 1), (-1, 1), (-1, 0), (-1, -1), (0, -1), (1, -1))
_ROOK_DIRECTIONS = ((1, 0), (-1, 0), (0, 1), (0, -1))
_BISHOP_DIRECTIONS = ((1, 1), (1, -1), (-1, 1), (-1, -1))


def _on_board(rank: int, file: int) -> bool:
    return 0 <= rank < 8 and 0 <= file < 8


def _leaper_table(deltas: tuple[tuple[int, int], ...]) -> tuple[int, ...]:
    table = []
    for sq in range(64):
        rank, file = divmod(sq, 8)
        bb = 0
        for dr, df in deltas:
            if _on_board(rank + dr, file + df):
                bb |= 1 << ((rank + dr) * 8 + file + df)
        table.append(bb)
    return tuple(table)


_KNIGHT_TABLE = _leaper_table(_KNIGHT_DELTAS)
_KING_TABLE = _leaper_table(_KING_DELTAS)
_PAWN_TABLE = (
    _leaper_table(((-1, -1), (-1, 1))),  # black pawns capture downwards
    _leaper_table(((1, -1), (1, 1))),  # white pawns capture upwards
)


def _slide(sq: int, occupied: int, directions: tuple[tuple[int, int], ...]) -> int:
    rank, file = divmod(sq, 8)
    bb = 0
    for dr, df in directions:
        r, f = rank + dr, file + df
        while _on_board(r, f):
            bit = 1 << (r * 8 + f)
            bb |= bit
            if occupied & bit:
                break
            r += dr
            f += df
    return bb


def popcount(bb: int) -> int:
    """Number of set bits."""
    return bin(bb & MASK64).count("1")


def lsb(bb: int) -> int:
    """Index of the least significant set bit."""
    if not bb:
        raise ValueError("empty bitboard has no least significant bit")
    return (bb & -bb).bit_length() - 1


def msb(bb: int) -> int:
    """Index of the most significant set bit."""
    if not bb:
        raise ValueError("empty bitboard has no most significant bit")
    return (bb & MASK64).bit_length() - 1


def iter_squares(bb: int) -> Iterator[int]:
    """Yield the set squares from lowest to highest."""
    bb &= MASK64
    while bb:
        low = bb & -bb
        yield low.bit_length() - 1
        bb ^= low


def test_bit(bb: int, sq: int) -> bool:
    """Whether square ``sq`` is set in ``bb``."""
    return bool((bb >> sq) & 1)


def pawn_attacks(colour: int, sq: int) -> int:
    """Squares a pawn of ``colour`` on ``sq`` attacks."""
    return _PAWN_TABLE[1 if colour else 0][sq]


def knight_attacks(sq: int) -> int:
    return _KNIGHT_TABLE[sq]


def king_attacks(sq: int) -> int:
    return _KING_TABLE[sq]


def bishop_attacks(sq: int, occupied: int) -> int:
    return _slide(sq, occupied, _BISHOP_DIRECTIONS)


def rook_attacks(sq: int, occupied: int) -> int:
    return _slide(sq, occupied, _ROOK_DIRECTIONS)


def queen_attacks(sq: int, occupied: int) -> int:
    return bishop_attacks(sq, occupied) | rook_attacks(sq, occupied)