"""Minimal chess position used for tablebase probing: move encoding,
pseudo-legal generation, legality and material keys."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from .attacks import (
    BLACK,
    MASK64,
    WHITE,
    bishop_attacks,
    iter_squares,
    king_attacks,
    knight_attacks,
    lsb,
    pawn_attacks,
    popcount,
    rook_attacks,
    test_bit,
)

PAWN, KNIGHT, BISHOP, ROOK, QUEEN, KING = 1, 2, 3, 4, 5, 6

WPAWN, WKNIGHT, WBISHOP, WROOK, WQUEEN, WKING = 1, 2, 3, 4, 5, 6
BPAWN, BKNIGHT, BBISHOP, BROOK, BQUEEN, BKING = 9, 10, 11, 12, 13, 14

PROMOTES_NONE = 0
PROMOTES_QUEEN = 1
PROMOTES_ROOK = 2
PROMOTES_BISHOP = 3
PROMOTES_KNIGHT = 4

PROMOSQS = 0xFF000000000000FF

PRIME_WKING = 0
PRIME_WQUEEN = 11811845319353239651
PRIME_WROOK = 10979190538029446137
PRIME_WBISHOP = 12311744257139811149
PRIME_WKNIGHT = 15202887380319082783
PRIME_WPAWN = 17008651141875982339
PRIME_BKING = 0
PRIME_BQUEEN = 15484752644942473553
PRIME_BROOK = 18264461213049635989
PRIME_BBISHOP = 15394650811035483107
PRIME_BKNIGHT = 13469005675588064321
PRIME_BPAWN = 11695583624105689831
PRIME_NONE = 0

PIECE_TO_CHAR = " PNBRQK  pnbrqk"

_PRIMES_BY_PIECE = (
    PRIME_NONE, PRIME_WPAWN, PRIME_WKNIGHT, PRIME_WBISHOP,
    PRIME_WROOK, PRIME_WQUEEN, PRIME_WKING, PRIME_NONE,
    PRIME_NONE, PRIME_BPAWN, PRIME_BKNIGHT, PRIME_BBISHOP,
    PRIME_BROOK, PRIME_BQUEEN, PRIME_BKING, PRIME_NONE,
)

_KEY_TERMS = (
    (WQUEEN, PRIME_WQUEEN), (WROOK, PRIME_WROOK), (WBISHOP, PRIME_WBISHOP),
    (WKNIGHT, PRIME_WKNIGHT), (WPAWN, PRIME_WPAWN),
    (BQUEEN, PRIME_BQUEEN), (BROOK, PRIME_BROOK), (BBISHOP, PRIME_BBISHOP),
    (BKNIGHT, PRIME_BKNIGHT), (BPAWN, PRIME_BPAWN),
)

_PROMOTION_ORDER = (PROMOTES_QUEEN, PROMOTES_KNIGHT, PROMOTES_ROOK, PROMOTES_BISHOP)


def make_move(promote: int, from_sq: int, to_sq: int) -> int:
    """Pack a move into 16 bits: promotion, origin and destination."""
    return ((promote & 0x7) << 12) | ((from_sq & 0x3F) << 6) | (to_sq & 0x3F)


def move_from(move: int) -> int:
    return (move >> 6) & 0x3F


def move_to(move: int) -> int:
    return move & 0x3F


def move_promotes(move: int) -> int:
    return (move >> 12) & 0x07


def colour_of_piece(piece: int) -> int:
    return 0 if piece >> 3 else 1


def type_of_piece(piece: int) -> int:
    return piece & 0x7


def char_to_piece_type(char: str) -> int:
    """Piece type for an upper-case piece letter, or 0 if unknown."""
    for piece in range(PAWN, KING + 1):
        if char == PIECE_TO_CHAR[piece]:
            return piece
    return 0


def calc_key_from_pcs(counts: Sequence[int], mirror: bool) -> int:
    """Material key from per-piece counts indexed by piece code."""
    flip = 8 if mirror else 0
    return sum(counts[piece ^ flip] * prime for piece, prime in _KEY_TERMS) & MASK64


def calc_key_from_pieces(pieces: Iterable[int]) -> int:
    """Material key from a list of piece codes."""
    return sum(_PRIMES_BY_PIECE[piece] for piece in pieces) & MASK64


def _promo_square(sq: int) -> bool:
    return bool((PROMOSQS >> sq) & 1)


def _pawn_start_square(colour: int, sq: int) -> bool:
    return (sq >> 3) == (1 if colour else 6)


def _do_bb_move(bb: int, from_sq: int, to_sq: int) -> int:
    moved = ((bb >> from_sq) & 1) << to_sq
    return moved | (bb & ~(1 << from_sq) & ~(1 << to_sq))


def _add_moves(moves: list[int], promotes: bool, from_sq: int, to_sq: int) -> None:
    if promotes:
        moves.extend(make_move(p, from_sq, to_sq) for p in _PROMOTION_ORDER)
    else:
        moves.append(make_move(PROMOTES_NONE, from_sq, to_sq))


@dataclass(frozen=True)
class Position:
    """Board as bitboards; ``turn`` is True when white is to move."""

    white: int
    black: int
    kings: int
    queens: int
    rooks: int
    bishops: int
    knights: int
    pawns: int
    rule50: int = 0
    ep: int = 0
    turn: bool = True

    @property
    def _us(self) -> int:
        return self.white if self.turn else self.black

    @property
    def _them(self) -> int:
        return self.black if self.turn else self.white

    def pieces_by_type(self, colour: int, piece: int) -> int:
        side = self.white if colour == WHITE else self.black
        boards = {
            PAWN: self.pawns, KNIGHT: self.knights, BISHOP: self.bishops,
            ROOK: self.rooks, QUEEN: self.queens, KING: self.kings,
        }
        if piece not in boards:
            raise ValueError(f"unknown piece type {piece}")
        return boards[piece] & side

    def calc_key(self, mirror: bool) -> int:
        """Material signature, with colours swapped when ``mirror`` is set."""
        white = self.black if mirror else self.white
        black = self.white if mirror else self.black
        total = (
            popcount(white & self.queens) * PRIME_WQUEEN
            + popcount(white & self.rooks) * PRIME_WROOK
            + popcount(white & self.bishops) * PRIME_WBISHOP
            + popcount(white & self.knights) * PRIME_WKNIGHT
            + popcount(white & self.pawns) * PRIME_WPAWN
            + popcount(black & self.queens) * PRIME_BQUEEN
            + popcount(black & self.rooks) * PRIME_BROOK
            + popcount(black & self.bishops) * PRIME_BBISHOP
            + popcount(black & self.knights) * PRIME_BKNIGHT
            + popcount(black & self.pawns) * PRIME_BPAWN
        )
        return total & MASK64

    def _piece_moves(self, targets: int) -> list[int]:
        us, them = self._us, self._them
        occupied = us | them
        moves: list[int] = []
        for sq in iter_squares(us & self.kings):
            for to in iter_squares(king_attacks(sq) & targets):
                _add_moves(moves, False, sq, to)
        for sq in iter_squares(us & (self.rooks | self.queens)):
            for to in iter_squares(rook_attacks(sq, occupied) & targets):
                _add_moves(moves, False, sq, to)
        for sq in iter_squares(us & (self.bishops | self.queens)):
            for to in iter_squares(bishop_attacks(sq, occupied) & targets):
                _add_moves(moves, False, sq, to)
        for sq in iter_squares(us & self.knights):
            for to in iter_squares(knight_attacks(sq) & targets):
                _add_moves(moves, False, sq, to)
        return moves

    def captures(self) -> list[int]:
        """Pseudo-legal captures, including en passant and capture-promotions."""
        them = self._them
        moves = self._piece_moves(them)
        for sq in iter_squares(self._us & self.pawns):
            attacks = pawn_attacks(self.turn, sq)
            if self.ep and test_bit(attacks, self.ep):
                _add_moves(moves, False, sq, self.ep)
            for to in iter_squares(attacks & them):
                _add_moves(moves, _promo_square(to), sq, to)
        return moves

    def moves(self) -> list[int]:
        """All pseudo-legal moves (castling is never generated)."""
        us, them = self._us, self._them
        occupied = us | them
        forward = 8 if self.turn else -8
        moves = self._piece_moves(~us & MASK64)
        for sq in iter_squares(us & self.pawns):
            attacks = pawn_attacks(self.turn, sq)
            if self.ep and test_bit(attacks, self.ep):
                _add_moves(moves, False, sq, self.ep)
            one = sq + forward
            if 0 <= one < 64 and not test_bit(occupied, one):
                _add_moves(moves, _promo_square(one), sq, one)
                two = one + forward
                if _pawn_start_square(self.turn, sq) and not test_bit(occupied, two):
                    _add_moves(moves, False, sq, two)
            for to in iter_squares(attacks & them):
                _add_moves(moves, _promo_square(to), sq, to)
        return moves

    def legal_moves(self) -> list[int]:
        return [m for m in self.moves() if self.is_legal_move(m)]

    def is_pawn_move(self, move: int) -> bool:
        return test_bit(self._us & self.pawns, move_from(move))

    def is_en_passant(self, move: int) -> bool:
        return bool(self.is_pawn_move(move) and move_to(move) == self.ep and self.ep)

    def is_capture(self, move: int) -> bool:
        return test_bit(self._them, move_to(move)) or self.is_en_passant(move)

    def is_legal(self) -> bool:
        """Whether the side that just moved has left its king unattacked."""
        us = self.black if self.turn else self.white
        them = self.white if self.turn else self.black
        occupied = us | them
        sq = lsb(self.kings & us)
        return not (
            king_attacks(sq) & self.kings & them
            or rook_attacks(sq, occupied) & (self.rooks | self.queens) & them
            or bishop_attacks(sq, occupied) & (self.bishops | self.queens) & them
            or knight_attacks(sq) & self.knights & them
            or pawn_attacks(not self.turn, sq) & self.pawns & them
        )

    def is_check(self) -> bool:
        us, them = self._us, self._them
        occupied = us | them
        sq = lsb(self.kings & us)
        return bool(
            rook_attacks(sq, occupied) & (self.rooks | self.queens) & them
            or bishop_attacks(sq, occupied) & (self.bishops | self.queens) & them
            or knight_attacks(sq) & self.knights & them
            or pawn_attacks(self.turn, sq) & self.pawns & them
        )

    def is_mate(self) -> bool:
        if not self.is_check():
            return False
        return not any(self.apply(m).is_legal() for m in self.moves())

    def apply(self, move: int) -> Position:
        """The position after ``move``; check ``is_legal`` on the result."""
        frm, to, promotes = move_from(move), move_to(move), move_promotes(move)

        white = _do_bb_move(self.white, frm, to)
        black = _do_bb_move(self.black, frm, to)
        kings = _do_bb_move(self.kings, frm, to)
        queens = _do_bb_move(self.queens, frm, to)
        rooks = _do_bb_move(self.rooks, frm, to)
        bishops = _do_bb_move(self.bishops, frm, to)
        knights = _do_bb_move(self.knights, frm, to)
        pawns = _do_bb_move(self.pawns, frm, to)
        ep = 0

        if promotes != PROMOTES_NONE:
            bit = 1 << to
            pawns &= ~bit
            if promotes == PROMOTES_QUEEN:
                queens |= bit
            elif promotes == PROMOTES_ROOK:
                rooks |= bit
            elif promotes == PROMOTES_BISHOP:
                bishops |= bit
            elif promotes == PROMOTES_KNIGHT:
                knights |= bit
            rule50 = 0
        elif test_bit(self.pawns, frm):
            rule50 = 0
            double = (frm ^ to) == 16
            if double and self.turn and pawn_attacks(WHITE, frm + 8) & self.pawns & self.black:
                ep = frm + 8
            if double and not self.turn and pawn_attacks(BLACK, frm - 8) & self.pawns & self.white:
                ep = frm - 8
            elif to == self.ep:
                victim = ~(1 << (to - 8 if self.turn else to + 8))
                white &= victim
                black &= victim
                pawns &= victim
        elif test_bit(self.white | self.black, to):
            rule50 = 0
        else:
            rule50 = self.rule50 + 1

        return Position(
            white=white, black=black, kings=kings, queens=queens,
            rooks=rooks, bishops=bishops, knights=knights, pawns=pawns,
            rule50=rule50, ep=ep, turn=not self.turn,
        )

    def is_legal_move(self, move: int) -> bool:
        return self.apply(move).is_legal()