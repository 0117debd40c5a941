"""Quantised HalfKP network: weight loading and the feed-forward evaluation."""

from __future__ import annotations

from dataclasses import dataclass
from os import PathLike
from pathlib import Path

import numpy as np

from .attacks import BLACK, WHITE
from .halfkp import INSIZE, KPSIZE, AccumulatorStack, BoardState
from .position import Position

L1SIZE = 2 * KPSIZE
L2SIZE = 8
L3SIZE = 32
OUTSIZE = 1

SHIFT_L0 = 6
SHIFT_L1 = 5

EVAL_LIMIT = 2000
MG_SCALE = 140

_I16_MIN, _I16_MAX = -32768, 32767


class NNUEError(Exception):
    """A network file could not be read or does not fit the expected layout."""


def _c_div(a: int, b: int) -> int:
    """Integer division truncating toward zero."""
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b > 0) else -q


def _clamp(value: int) -> int:
    return max(-EVAL_LIMIT, min(EVAL_LIMIT, value))


# Order and element types of the sections in a network file.
_FILE_LAYOUT = (
    ("in_biases", "<i2", KPSIZE),
    ("in_weights", "<i2", INSIZE * KPSIZE),
    ("l1_biases", "<i4", L2SIZE),
    ("l1_weights", "i1", L1SIZE * L2SIZE),
    ("l2_biases", "<f4", L3SIZE),
    ("l2_weights", "<f4", L2SIZE * L3SIZE),
    ("l3_biases", "<f4", OUTSIZE),
    ("l3_weights", "<f4", L3SIZE * OUTSIZE),
)


@dataclass(eq=False)
class Network:
    """Network parameters, with layer weights stored output-major.

    ``in_weights`` has one row per input feature; ``l1_weights`` has one row
    per second-layer neuron covering both perspectives; ``l2_weights`` has one
    row per third-layer neuron; ``l3_weights`` is the single output row.
    Biases of the float layers are kept as trained and scaled on use.
    """

    in_biases: np.ndarray
    in_weights: np.ndarray
    l1_biases: np.ndarray
    l1_weights: np.ndarray
    l2_biases: np.ndarray
    l2_weights: np.ndarray
    l3_biases: np.ndarray
    l3_weights: np.ndarray

    def __post_init__(self) -> None:
        self.in_biases = np.asarray(self.in_biases, dtype=np.int16)
        self.in_weights = np.asarray(self.in_weights, dtype=np.int16)
        self.l1_biases = np.asarray(self.l1_biases, dtype=np.int32)
        self.l1_weights = np.asarray(self.l1_weights, dtype=np.int8)
        self.l2_biases = np.asarray(self.l2_biases, dtype=np.float32)
        self.l2_weights = np.asarray(self.l2_weights, dtype=np.float32)
        self.l3_biases = np.asarray(self.l3_biases, dtype=np.float32).reshape(-1)
        self.l3_weights = np.asarray(self.l3_weights, dtype=np.float32).reshape(-1)

        if self.in_biases.ndim != 1 or self.in_biases.shape[0] == 0:
            raise NNUEError("input biases must be a non-empty vector")
        width = self.in_biases.shape[0]
        if width % 2:
            raise NNUEError("accumulator width must be even")
        if self.in_weights.shape != (INSIZE, width):
            raise NNUEError(f"input weights must have shape ({INSIZE}, {width})")
        if self.l1_biases.ndim != 1:
            raise NNUEError("layer one biases must be a vector")
        hidden1 = self.l1_biases.shape[0]
        if self.l1_weights.shape != (hidden1, 2 * width):
            raise NNUEError(f"layer one weights must have shape ({hidden1}, {2 * width})")
        if self.l2_biases.ndim != 1:
            raise NNUEError("layer two biases must be a vector")
        hidden2 = self.l2_biases.shape[0]
        if self.l2_weights.shape != (hidden2, hidden1):
            raise NNUEError(f"layer two weights must have shape ({hidden2}, {hidden1})")
        if self.l3_biases.shape != (OUTSIZE,):
            raise NNUEError(f"output biases must hold {OUTSIZE} value")
        if self.l3_weights.shape != (hidden2,):
            raise NNUEError(f"output weights must hold {hidden2} values")

    @property
    def width(self) -> int:
        """Number of first-layer neurons per perspective."""
        return self.in_biases.shape[0]

    @classmethod
    def from_bytes(cls, data: bytes) -> Network:
        """Parse a network file's contents; trailing bytes are ignored."""
        sections: dict[str, np.ndarray] = {}
        offset = 0
        for name, dtype, count in _FILE_LAYOUT:
            size = np.dtype(dtype).itemsize * count
            if offset + size > len(data):
                raise NNUEError("Unable to read NNUE File")
            raw = np.frombuffer(data, dtype=dtype, count=count, offset=offset)
            sections[name] = raw.astype(np.dtype(dtype).newbyteorder("="))
            offset += size

        return cls(
            in_biases=sections["in_biases"],
            in_weights=sections["in_weights"].reshape(INSIZE, KPSIZE),
            l1_biases=sections["l1_biases"],
            l1_weights=sections["l1_weights"].reshape(L1SIZE, L2SIZE).T.copy(),
            l2_biases=sections["l2_biases"],
            l2_weights=sections["l2_weights"].reshape(L2SIZE, L3SIZE).T.copy(),
            l3_biases=sections["l3_biases"],
            l3_weights=sections["l3_weights"],
        )

    @classmethod
    def load(cls, path: str | PathLike) -> Network:
        """Read a network from a file."""
        try:
            data = Path(path).read_bytes()
        except OSError as exc:
            raise NNUEError(f"Unable to read NNUE File: {exc}") from exc
        return cls.from_bytes(data)

    def new_stack(self) -> AccumulatorStack:
        """An accumulator stack driven by this network's input layer."""
        return AccumulatorStack(self.in_weights, self.in_biases)

    def forward(self, us, them) -> float:
        """Raw network output for the side-to-move and opponent accumulators."""
        us_arr = np.asarray(us, dtype=np.int32)
        them_arr = np.asarray(them, dtype=np.int32)
        if us_arr.shape != (self.width,) or them_arr.shape != (self.width,):
            raise NNUEError(f"accumulators must hold {self.width} values each")

        # Clipped ReLU down to unsigned bytes.
        inputs = np.clip(np.concatenate((us_arr, them_arr)) >> SHIFT_L0, 0, 255)

        # Adjacent byte products are summed into saturating 16-bit lanes.
        products = self.l1_weights.astype(np.int32) * inputs
        pairs = np.clip(products[:, 0::2] + products[:, 1::2], _I16_MIN, _I16_MAX)
        sums = pairs.sum(axis=1, dtype=np.int64) + self.l1_biases
        hidden1 = np.maximum(sums, 0).astype(np.float32)

        scale = np.float32(1 << SHIFT_L1)
        hidden2 = np.maximum(self.l2_weights @ hidden1 + self.l2_biases * scale, np.float32(0))
        output = np.float32(self.l3_weights @ hidden2) + self.l3_biases[0] * scale
        return float(output)

    def evaluate(self, stack: AccumulatorStack, board) -> tuple[int, int]:
        """Midgame and endgame scores in centipawns for the side to move."""
        if isinstance(board, Position):
            board = BoardState.from_position(board)
        if stack.width != self.width:
            raise NNUEError(
                f"stack width {stack.width} does not match network width {self.width}"
            )

        if board.kings == (board.white | board.black):
            return (0, 0)

        acc = stack.ensure(board)
        other = BLACK if board.turn == WHITE else WHITE
        raw = int(self.forward(acc.values[board.turn], acc.values[other])) >> SHIFT_L1

        mg = _c_div(MG_SCALE * raw, 100)
        eg = _c_div(100 * raw, 100)
        return (_clamp(mg), _clamp(eg))