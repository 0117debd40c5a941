"""Bitboard move generation, HalfKP NNUE evaluation and endgame tablebase index decoding."""

__version__ = "0.1.0"

__all__ = [
    "attacks",
    "position",
    "halfkp",
    "nnue",
    "codec",
]