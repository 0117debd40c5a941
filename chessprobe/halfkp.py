"""HalfKP feature indexing and incrementally updated accumulators.

Colours follow the package convention (1 is white, 0 is black) and piece
types are those of :mod:`chessprobe.position` (pawn 1 to king 6).
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from .attacks import BLACK, WHITE, iter_squares, lsb, test_bit
from .position import BISHOP, KING, KNIGHT, PAWN, QUEEN, ROOK, Position

INSIZE = 20480
KPSIZE = 768
MAX_DELTAS = 3
LEFT_FLANK = 0x0F0F0F0F0F0F0F0F

_MIRROR = (3, 2, 1, 0, 0, 1, 2, 3)
_COLOURS = (WHITE, BLACK)
_NON_KING_TYPES = (PAWN, KNIGHT, BISHOP, ROOK, QUEEN)


def sq64_to_sq32(sq: int) -> int:
    """Fold a square onto one half of the board, mirroring across the centre files."""
    return ((sq >> 1) & ~0x3) + _MIRROR[sq & 0x7]


def relative_square(colour: int, sq: int) -> int:
    """The square as seen from ``colour``'s side of the board."""
    return sq if colour == WHITE else sq ^ 56


def nnue_index(piece_type: int, piece_colour: int, relksq: int, colour: int, sq: int) -> int:
    """Input feature index of a non-king piece from ``colour``'s perspective."""
    if piece_type not in _NON_KING_TYPES:
        raise ValueError(f"piece type {piece_type} has no HalfKP feature")
    relpsq = relative_square(colour, sq)
    if test_bit(LEFT_FLANK, relksq):
        mksq, mpsq = relksq ^ 0x7, relpsq ^ 0x7
    else:
        mksq, mpsq = relksq, relpsq
    same = 1 if colour == piece_colour else 0
    return 640 * sq64_to_sq32(mksq) + 64 * (5 * same + piece_type - PAWN) + mpsq


@dataclass(frozen=True)
class BoardState:
    """The piece placement an accumulator refresh reads."""

    white: int
    black: int
    kings: int
    queens: int
    rooks: int
    bishops: int
    knights: int
    pawns: int
    turn: int = WHITE

    @classmethod
    def from_position(cls, pos: Position) -> BoardState:
        return cls(
            white=pos.white, black=pos.black, kings=pos.kings, queens=pos.queens,
            rooks=pos.rooks, bishops=pos.bishops, knights=pos.knights,
            pawns=pos.pawns, turn=WHITE if pos.turn else BLACK,
        )

    def pieces(self, colour: int, piece_type: int) -> int:
        boards = {
            PAWN: self.pawns, KNIGHT: self.knights, BISHOP: self.bishops,
            ROOK: self.rooks, QUEEN: self.queens, KING: self.kings,
        }
        if piece_type not in boards:
            raise ValueError(f"unknown piece type {piece_type}")
        return boards[piece_type] & (self.white if colour == WHITE else self.black)

    def king_square(self, colour: int) -> int:
        return lsb(self.pieces(colour, KING))


@dataclass(frozen=True)
class Delta:
    """One piece change; ``None`` marks a missing origin or destination."""

    piece_type: int
    colour: int
    from_sq: int | None
    to_sq: int | None


@dataclass
class Accumulator:
    """First-layer sums for both perspectives at one ply."""

    values: np.ndarray
    accurate: list[bool] = field(default_factory=lambda: [False, False])
    deltas: list[Delta] = field(default_factory=list)

    @classmethod
    def blank(cls, width: int) -> Accumulator:
        return cls(values=np.zeros((2, width), dtype=np.int16))


@dataclass
class _TableEntry:
    values: np.ndarray
    occupancy: dict[tuple[int, int, int], int] = field(default_factory=dict)


class AccumulatorStack:
    """Per-ply accumulators with a king-square cache for full refreshes."""

    def __init__(self, weights, biases) -> None:
        self.biases = np.asarray(biases, dtype=np.int16)
        self.weights = np.asarray(weights, dtype=np.int16)
        if self.biases.ndim != 1:
            raise ValueError("biases must be one-dimensional")
        self.width = self.biases.shape[0]
        if self.weights.shape != (INSIZE, self.width):
            raise ValueError(
                f"weights must have shape ({INSIZE}, {self.width}), got {self.weights.shape}"
            )
        self._stack = [Accumulator.blank(self.width)]
        self._depth = 0
        self._table = [
            _TableEntry(values=np.zeros((2, self.width), dtype=np.int16)) for _ in range(64)
        ]
        self.reset()

    @property
    def current(self) -> Accumulator:
        return self._stack[self._depth]

    @property
    def depth(self) -> int:
        return self._depth

    def reset(self) -> None:
        """Clear the cache to the biases and return to an inaccurate root."""
        for entry in self._table:
            entry.values[:] = self.biases
            entry.occupancy.clear()
        self._depth = 0
        root = self.current
        root.accurate = [False, False]
        root.deltas = []

    def push(self) -> None:
        self._depth += 1
        if self._depth == len(self._stack):
            self._stack.append(Accumulator.blank(self.width))
        acc = self.current
        acc.accurate = [False, False]
        acc.deltas = []

    def pop(self) -> None:
        if self._depth == 0:
            raise IndexError("cannot pop the root accumulator")
        self._depth -= 1

    def move_piece(self, piece_type: int, piece_colour: int, from_sq, to_sq) -> None:
        acc = self.current
        if len(acc.deltas) >= MAX_DELTAS:
            raise ValueError(f"at most {MAX_DELTAS} piece changes per ply")
        acc.deltas.append(Delta(piece_type, piece_colour, from_sq, to_sq))

    def add_piece(self, piece_type: int, piece_colour: int, sq: int) -> None:
        self.move_piece(piece_type, piece_colour, None, sq)

    def remove_piece(self, piece_type, piece_colour: int, sq: int) -> None:
        """Record a removal; ``piece_type`` of ``None`` means the square was empty."""
        if piece_type is not None:
            self.move_piece(piece_type, piece_colour, sq, None)

    def can_update(self, colour: int) -> bool:
        """Whether an accurate ancestor exists with no intervening own-king move."""
        for depth in range(self._depth, 0, -1):
            acc = self._stack[depth]
            if acc.deltas and acc.deltas[0].piece_type == KING and acc.deltas[0].colour == colour:
                return False
            if self._stack[depth - 1].accurate[colour]:
                return True
        return False

    def _shift(self, base: np.ndarray, added: list[int], removed: list[int]) -> np.ndarray:
        result = base.copy()
        for idx in added:
            result += self.weights[idx]
        for idx in removed:
            result -= self.weights[idx]
        return result

    def update(self, colour: int, relksq: int) -> None:
        """Bring ``colour``'s sums up to date from the nearest accurate ancestor."""
        first = self._depth
        while first > 0 and not self._stack[first - 1].accurate[colour]:
            first -= 1
        if first == 0:
            raise ValueError("no accurate ancestor to update from")
        for depth in range(first, self._depth + 1):
            acc, parent = self._stack[depth], self._stack[depth - 1]
            added: list[int] = []
            removed: list[int] = []
            for delta in acc.deltas:
                if delta.piece_type == KING:
                    continue
                if delta.to_sq is not None:
                    added.append(nnue_index(delta.piece_type, delta.colour, relksq, colour, delta.to_sq))
                if delta.from_sq is not None:
                    removed.append(nnue_index(delta.piece_type, delta.colour, relksq, colour, delta.from_sq))
            acc.values[colour] = self._shift(parent.values[colour], added, removed)
            acc.accurate[colour] = True

    def refresh(self, board: BoardState, colour: int, relksq: int) -> None:
        """Recompute ``colour``'s sums through the cache entry of its king square."""
        entry = self._table[board.king_square(colour)]
        to_set: list[int] = []
        to_unset: list[int] = []
        for c in _COLOURS:
            for pt in _NON_KING_TYPES:
                pieces = board.pieces(c, pt)
                key = (colour, c, pt)
                old = entry.occupancy.get(key, 0)
                to_set.extend(
                    nnue_index(pt, c, relksq, colour, sq) for sq in iter_squares(pieces & ~old)
                )
                to_unset.extend(
                    nnue_index(pt, c, relksq, colour, sq) for sq in iter_squares(old & ~pieces)
                )
                entry.occupancy[key] = pieces
        entry.values[colour] = self._shift(entry.values[colour], to_set, to_unset)
        acc = self.current
        acc.values[colour] = entry.values[colour]
        acc.accurate[colour] = True

    def ensure(self, board: BoardState) -> Accumulator:
        """Make both perspectives of the current accumulator accurate."""
        acc = self.current
        for colour in (WHITE, BLACK):
            if not acc.accurate[colour]:
                relksq = relative_square(colour, board.king_square(colour))
                if self.can_update(colour):
                    self.update(colour, relksq)
                else:
                    self.refresh(board, colour, relksq)
        return acc