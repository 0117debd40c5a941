"""Position indexing and pair-compressed block decoding for tablebase files.

Squares run from 0 (a1) to 63 (h8). Index encodings map a placement of the
pieces of one material signature onto a dense integer; the pair decoder then
reads the stored value for that integer out of a Huffman-coded block.
"""

from __future__ import annotations

import math
import struct
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import IntEnum

MASK64 = (1 << 64) - 1
MAX_SYMBOLS = 4096


class Encoding(IntEnum):
    """How the leading pieces of a table are indexed."""

    PIECE = 0
    FILE = 1
    RANK = 2


@dataclass(frozen=True)
class EntryShape:
    """The parts of a table's material signature that indexing depends on.

    ``num`` is the total piece count, ``kk_enc`` selects the two-king
    encoding for pawnless tables, and ``pawns`` holds the leading and the
    other side's pawn counts.
    """

    num: int
    kk_enc: bool = False
    pawns: tuple[int, int] = (0, 0)

    @property
    def has_pawns(self) -> bool:
        return bool(self.pawns[0] or self.pawns[1])


@dataclass
class EncInfo:
    """Per-table piece order, grouping and index factors."""

    pieces: tuple[int, ...]
    norm: tuple[int, ...]
    factor: tuple[int, ...]
    size: int
    precomp: PairsData | None = None


_OFF_DIAG = (
    0, -1, -1, -1, -1, -1, -1, -1,
    1, 0, -1, -1, -1, -1, -1, -1,
    1, 1, 0, -1, -1, -1, -1, -1,
    1, 1, 1, 0, -1, -1, -1, -1,
    1, 1, 1, 1, 0, -1, -1, -1,
    1, 1, 1, 1, 1, 0, -1, -1,
    1, 1, 1, 1, 1, 1, 0, -1,
    1, 1, 1, 1, 1, 1, 1, 0,
)

_TRIANGLE = (
    6, 0, 1, 2, 2, 1, 0, 6,
    0, 7, 3, 4, 4, 3, 7, 0,
    1, 3, 8, 5, 5, 8, 3, 1,
    2, 4, 5, 9, 9, 5, 4, 2,
    2, 4, 5, 9, 9, 5, 4, 2,
    1, 3, 8, 5, 5, 8, 3, 1,
    0, 7, 3, 4, 4, 3, 7, 0,
    6, 0, 1, 2, 2, 1, 0, 6,
)

_FLIP_DIAG = tuple((sq % 8) * 8 + sq // 8 for sq in range(64))

_LOWER = (
    28, 0, 1, 2, 3, 4, 5, 6,
    0, 29, 7, 8, 9, 10, 11, 12,
    1, 7, 30, 13, 14, 15, 16, 17,
    2, 8, 13, 31, 18, 19, 20, 21,
    3, 9, 14, 18, 32, 22, 23, 24,
    4, 10, 15, 19, 22, 33, 25, 26,
    5, 11, 16, 20, 23, 25, 34, 27,
    6, 12, 17, 21, 24, 26, 27, 35,
)

_DIAG = (
    0, 0, 0, 0, 0, 0, 0, 8,
    0, 1, 0, 0, 0, 0, 9, 0,
    0, 0, 2, 0, 0, 10, 0, 0,
    0, 0, 0, 3, 11, 0, 0, 0,
    0, 0, 0, 12, 4, 0, 0, 0,
    0, 0, 13, 0, 0, 5, 0, 0,
    0, 14, 0, 0, 0, 0, 6, 0,
    15, 0, 0, 0, 0, 0, 0, 7,
)

_FLAP = (
    (
        0, 0, 0, 0, 0, 0, 0, 0,
        0, 6, 12, 18, 18, 12, 6, 0,
        1, 7, 13, 19, 19, 13, 7, 1,
        2, 8, 14, 20, 20, 14, 8, 2,
        3, 9, 15, 21, 21, 15, 9, 3,
        4, 10, 16, 22, 22, 16, 10, 4,
        5, 11, 17, 23, 23, 17, 11, 5,
        0, 0, 0, 0, 0, 0, 0, 0,
    ),
    (
        0, 0, 0, 0, 0, 0, 0, 0,
        0, 1, 2, 3, 3, 2, 1, 0,
        4, 5, 6, 7, 7, 6, 5, 4,
        8, 9, 10, 11, 11, 10, 9, 8,
        12, 13, 14, 15, 15, 14, 13, 12,
        16, 17, 18, 19, 19, 18, 17, 16,
        20, 21, 22, 23, 23, 22, 21, 20,
        0, 0, 0, 0, 0, 0, 0, 0,
    ),
)

_PAWN_TWIST = (
    (
        0, 0, 0, 0, 0, 0, 0, 0,
        47, 35, 23, 11, 10, 22, 34, 46,
        45, 33, 21, 9, 8, 20, 32, 44,
        43, 31, 19, 7, 6, 18, 30, 42,
        41, 29, 17, 5, 4, 16, 28, 40,
        39, 27, 15, 3, 2, 14, 26, 38,
        37, 25, 13, 1, 0, 12, 24, 36,
        0, 0, 0, 0, 0, 0, 0, 0,
    ),
    (
        0, 0, 0, 0, 0, 0, 0, 0,
        47, 45, 43, 41, 40, 42, 44, 46,
        39, 37, 35, 33, 32, 34, 36, 38,
        31, 29, 27, 25, 24, 26, 28, 30,
        23, 21, 19, 17, 16, 18, 20, 22,
        15, 13, 11, 9, 8, 10, 12, 14,
        7, 5, 3, 1, 0, 2, 4, 6,
        0, 0, 0, 0, 0, 0, 0, 0,
    ),
)

_KK_IDX = (
    (
        -1, -1, -1, 0, 1, 2, 3, 4,
        -1, -1, -1, 5, 6, 7, 8, 9,
        10, 11, 12, 13, 14, 15, 16, 17,
        18, 19, 20, 21, 22, 23, 24, 25,
        26, 27, 28, 29, 30, 31, 32, 33,
        34, 35, 36, 37, 38, 39, 40, 41,
        42, 43, 44, 45, 46, 47, 48, 49,
        50, 51, 52, 53, 54, 55, 56, 57,
    ),
    (
        58, -1, -1, -1, 59, 60, 61, 62,
        63, -1, -1, -1, 64, 65, 66, 67,
        68, 69, 70, 71, 72, 73, 74, 75,
        76, 77, 78, 79, 80, 81, 82, 83,
        84, 85, 86, 87, 88, 89, 90, 91,
        92, 93, 94, 95, 96, 97, 98, 99,
        100, 101, 102, 103, 104, 105, 106, 107,
        108, 109, 110, 111, 112, 113, 114, 115,
    ),
    (
        116, 117, -1, -1, -1, 118, 119, 120,
        121, 122, -1, -1, -1, 123, 124, 125,
        126, 127, 128, 129, 130, 131, 132, 133,
        134, 135, 136, 137, 138, 139, 140, 141,
        142, 143, 144, 145, 146, 147, 148, 149,
        150, 151, 152, 153, 154, 155, 156, 157,
        158, 159, 160, 161, 162, 163, 164, 165,
        166, 167, 168, 169, 170, 171, 172, 173,
    ),
    (
        174, -1, -1, -1, 175, 176, 177, 178,
        179, -1, -1, -1, 180, 181, 182, 183,
        184, -1, -1, -1, 185, 186, 187, 188,
        189, 190, 191, 192, 193, 194, 195, 196,
        197, 198, 199, 200, 201, 202, 203, 204,
        205, 206, 207, 208, 209, 210, 211, 212,
        213, 214, 215, 216, 217, 218, 219, 220,
        221, 222, 223, 224, 225, 226, 227, 228,
    ),
    (
        229, 230, -1, -1, -1, 231, 232, 233,
        234, 235, -1, -1, -1, 236, 237, 238,
        239, 240, -1, -1, -1, 241, 242, 243,
        244, 245, 246, 247, 248, 249, 250, 251,
        252, 253, 254, 255, 256, 257, 258, 259,
        260, 261, 262, 263, 264, 265, 266, 267,
        268, 269, 270, 271, 272, 273, 274, 275,
        276, 277, 278, 279, 280, 281, 282, 283,
    ),
    (
        284, 285, 286, 287, 288, 289, 290, 291,
        292, 293, -1, -1, -1, 294, 295, 296,
        297, 298, -1, -1, -1, 299, 300, 301,
        302, 303, -1, -1, -1, 304, 305, 306,
        307, 308, 309, 310, 311, 312, 313, 314,
        315, 316, 317, 318, 319, 320, 321, 322,
        323, 324, 325, 326, 327, 328, 329, 330,
        331, 332, 333, 334, 335, 336, 337, 338,
    ),
    (
        -1, -1, 339, 340, 341, 342, 343, 344,
        -1, -1, 345, 346, 347, 348, 349, 350,
        -1, -1, 441, 351, 352, 353, 354, 355,
        -1, -1, -1, 442, 356, 357, 358, 359,
        -1, -1, -1, -1, 443, 360, 361, 362,
        -1, -1, -1, -1, -1, 444, 363, 364,
        -1, -1, -1, -1, -1, -1, 445, 365,
        -1, -1, -1, -1, -1, -1, -1, 446,
    ),
    (
        -1, -1, -1, 366, 367, 368, 369, 370,
        -1, -1, -1, 371, 372, 373, 374, 375,
        -1, -1, -1, 376, 377, 378, 379, 380,
        -1, -1, -1, 447, 381, 382, 383, 384,
        -1, -1, -1, -1, 448, 385, 386, 387,
        -1, -1, -1, -1, -1, 449, 388, 389,
        -1, -1, -1, -1, -1, -1, 450, 390,
        -1, -1, -1, -1, -1, -1, -1, 451,
    ),
    (
        452, 391, 392, 393, 394, 395, 396, 397,
        -1, -1, -1, -1, 398, 399, 400, 401,
        -1, -1, -1, -1, 402, 403, 404, 405,
        -1, -1, -1, -1, 406, 407, 408, 409,
        -1, -1, -1, -1, 453, 410, 411, 412,
        -1, -1, -1, -1, -1, 454, 413, 414,
        -1, -1, -1, -1, -1, -1, 455, 415,
        -1, -1, -1, -1, -1, -1, -1, 456,
    ),
    (
        457, 416, 417, 418, 419, 420, 421, 422,
        -1, 458, 423, 424, 425, 426, 427, 428,
        -1, -1, -1, -1, -1, 429, 430, 431,
        -1, -1, -1, -1, -1, 432, 433, 434,
        -1, -1, -1, -1, -1, 435, 436, 437,
        -1, -1, -1, -1, -1, 459, 438, 439,
        -1, -1, -1, -1, -1, -1, 460, 440,
        -1, -1, -1, -1, -1, -1, -1, 461,
    ),
)

_FILE_TO_FILE = (0, 1, 2, 3, 3, 2, 1, 0)

# _BINOMIAL[k][n] is the number of ways to choose k of n squares.
_BINOMIAL = tuple(tuple(math.comb(n, k) for n in range(64)) for k in range(7))


def _build_pawn_tables():
    pawn_idx = [[[0] * 24 for _ in range(6)] for _ in range(2)]
    factor_file = [[0] * 4 for _ in range(6)]
    factor_rank = [[0] * 6 for _ in range(6)]

    for i in range(6):
        total = 0
        for j in range(24):
            pawn_idx[0][i][j] = total
            total += _BINOMIAL[i][_PAWN_TWIST[0][(1 + j % 6) * 8 + j // 6]]
            if (j + 1) % 6 == 0:
                factor_file[i][j // 6] = total
                total = 0

    for i in range(6):
        total = 0
        for j in range(24):
            pawn_idx[1][i][j] = total
            total += _BINOMIAL[i][_PAWN_TWIST[1][(1 + j // 4) * 8 + j % 4]]
            if (j + 1) % 4 == 0:
                factor_rank[i][j // 4] = total
                total = 0

    return pawn_idx, factor_file, factor_rank


_PAWN_IDX, _PAWN_FACTOR_FILE, _PAWN_FACTOR_RANK = _build_pawn_tables()


def subfactor(k: int, n: int) -> int:
    """Number of placements of ``k`` like pieces on ``n`` squares."""
    f = n
    div = 1
    for i in range(1, k):
        f *= n - i
        div *= i + 1
    return f // div


def leading_pawn(squares: Sequence[int], shape: EntryShape, enc: Encoding) -> tuple[int, list[int]]:
    """Move the leading pawn to the front.

    Returns the table number it selects (a file group or a rank) and the
    reordered squares.
    """
    if enc == Encoding.PIECE:
        raise ValueError("pawnless encoding has no leading pawn")
    flap = _FLAP[enc - 1]
    p = list(squares)
    for i in range(1, shape.pawns[0]):
        if flap[p[0]] > flap[p[i]]:
            p[0], p[i] = p[i], p[0]
    if enc == Encoding.FILE:
        return _FILE_TO_FILE[p[0] & 7], p
    return (p[0] - 8) >> 3, p


def encode(squares: Sequence[int], info: EncInfo, shape: EntryShape, enc: Encoding) -> int:
    """Dense index of a placement, squares given in the table's piece order."""
    n = shape.num
    if len(squares) < n:
        raise ValueError(f"expected {n} squares, got {len(squares)}")
    p = list(squares[:n])

    if p[0] & 0x04:
        p = [sq ^ 0x07 for sq in p]

    if enc == Encoding.PIECE:
        if p[0] & 0x20:
            p = [sq ^ 0x38 for sq in p]

        limit = 2 if shape.kk_enc else 3
        for i, sq in enumerate(p):
            if _OFF_DIAG[sq]:
                if _OFF_DIAG[sq] > 0 and i < limit:
                    p = [_FLIP_DIAG[x] for x in p]
                break

        if shape.kk_enc:
            idx = _KK_IDX[_TRIANGLE[p[0]]][p[1]]
            k = 2
        else:
            s1 = int(p[1] > p[0])
            s2 = int(p[2] > p[0]) + int(p[2] > p[1])
            if _OFF_DIAG[p[0]]:
                idx = _TRIANGLE[p[0]] * 63 * 62 + (p[1] - s1) * 62 + (p[2] - s2)
            elif _OFF_DIAG[p[1]]:
                idx = 6 * 63 * 62 + _DIAG[p[0]] * 28 * 62 + _LOWER[p[1]] * 62 + p[2] - s2
            elif _OFF_DIAG[p[2]]:
                idx = (
                    6 * 63 * 62 + 4 * 28 * 62 + _DIAG[p[0]] * 7 * 28
                    + (_DIAG[p[1]] - s1) * 28 + _LOWER[p[2]]
                )
            else:
                idx = (
                    6 * 63 * 62 + 4 * 28 * 62 + 4 * 7 * 28 + _DIAG[p[0]] * 7 * 6
                    + (_DIAG[p[1]] - s1) * 6 + (_DIAG[p[2]] - s2)
                )
            k = 3
        idx *= info.factor[0]
    else:
        twist = _PAWN_TWIST[enc - 1]
        k = shape.pawns[0]
        p[1:k] = sorted(p[1:k], key=lambda sq: -twist[sq])

        idx = _PAWN_IDX[enc - 1][k - 1][_FLAP[enc - 1][p[0]]]
        for i in range(1, k):
            idx += _BINOMIAL[k - i][twist[p[i]]]
        idx *= info.factor[0]

        if shape.pawns[1]:
            t = k + shape.pawns[1]
            p[k:t] = sorted(p[k:t])
            total = 0
            for i, sq in enumerate(p[k:t], 1):
                skips = sum(1 for x in p[:k] if sq > x)
                total += _BINOMIAL[i][sq - skips - 8]
            idx += total * info.factor[k]
            k = t

    while k < n:
        t = k + info.norm[k]
        p[k:t] = sorted(p[k:t])
        total = 0
        for i, sq in enumerate(p[k:t], 1):
            skips = sum(1 for x in p[:k] if sq > x)
            total += _BINOMIAL[i][sq - skips]
        idx += total * info.factor[k]
        k = t

    return idx


def build_enc_info(
    data, offset: int, shape: EntryShape, shift: int, t: int, enc: Encoding
) -> EncInfo:
    """Read one table's piece order and compute its grouping and factors."""
    more_pawns = enc != Encoding.PIECE and shape.pawns[1] > 0
    num = shape.num
    try:
        pieces = tuple(
            (data[offset + i + 1 + more_pawns] >> shift) & 0x0F for i in range(num)
        )
        order = (data[offset] >> shift) & 0x0F
        order2 = (data[offset + 1] >> shift) & 0x0F if more_pawns else 0x0F
    except IndexError as exc:
        raise ValueError("table header is truncated") from exc

    norm = [0] * num
    if enc != Encoding.PIECE:
        k = shape.pawns[0]
    else:
        k = 2 if shape.kk_enc else 3
    norm[0] = k

    if more_pawns:
        norm[k] = shape.pawns[1]
        k += norm[k]

    i = k
    while i < num:
        j = i
        while j < num and pieces[j] == pieces[i]:
            norm[i] += 1
            j += 1
        i += norm[i]

    factor = [0] * num
    free = 64 - k
    f = 1
    i = 0
    while k < num or i == order or i == order2:
        if i == order:
            factor[0] = f
            if enc == Encoding.FILE:
                f *= _PAWN_FACTOR_FILE[norm[0] - 1][t]
            elif enc == Encoding.RANK:
                f *= _PAWN_FACTOR_RANK[norm[0] - 1][t]
            else:
                f *= 462 if shape.kk_enc else 31332
        elif i == order2:
            factor[norm[0]] = f
            f *= subfactor(norm[norm[0]], 48 - norm[0])
        else:
            factor[k] = f
            f *= subfactor(norm[k], free)
            free -= norm[k]
            k += norm[k]
        i += 1

    return EncInfo(pieces=pieces, norm=tuple(norm), factor=tuple(factor), size=f)


def _read_be(data, pos: int, size: int) -> int:
    """Big-endian read that treats bytes past the end of the buffer as zero."""
    chunk = bytes(data[pos:pos + size])
    if len(chunk) < size:
        chunk += b"\0" * (size - len(chunk))
    return int.from_bytes(chunk, "big")


@dataclass(eq=False)
class PairsData:
    """Decoder state for one compressed table.

    ``index_offset``, ``size_offset`` and ``data_offset`` locate the sparse
    index, the block-size table and the first data block inside ``data``;
    they are filled in once the whole file layout is known.
    """

    data: object = field(repr=False)
    flags: int
    idx_bits: int = 0
    const_value: bytes = b"\0\0"
    block_size: int = 0
    min_len: int = 0
    offsets: tuple[int, ...] = ()
    bases: tuple[int, ...] = ()
    sym_len: tuple[int, ...] = ()
    sym_pat: int = 0
    index_size: int = 0
    size_table_size: int = 0
    data_size: int = 0
    index_offset: int = 0
    size_offset: int = 0
    data_offset: int = 0

    def _block_length(self, block: int) -> int:
        if block < 0:
            raise ValueError("corrupt table: block before the first")
        return struct.unpack_from("<H", self.data, self.size_offset + 2 * block)[0]

    def decompress(self, idx: int) -> bytes:
        """The stored symbol pattern for value number ``idx``."""
        if not self.idx_bits:
            return self.const_value

        try:
            main_idx = idx >> self.idx_bits
            lit_idx = (idx & ((1 << self.idx_bits) - 1)) - (1 << (self.idx_bits - 1))
            block, idx_offset = struct.unpack_from(
                "<IH", self.data, self.index_offset + 6 * main_idx
            )
            lit_idx += idx_offset

            if lit_idx < 0:
                while lit_idx < 0:
                    block -= 1
                    lit_idx += self._block_length(block) + 1
            else:
                while lit_idx > self._block_length(block):
                    lit_idx -= self._block_length(block) + 1
                    block += 1
        except struct.error as exc:
            raise ValueError("corrupt table: index out of range") from exc

        ptr = self.data_offset + (block << self.block_size)
        m = self.min_len
        code = _read_be(self.data, ptr, 8)
        ptr += 8
        bit_count = 0

        while True:
            length = m
            while code < self.bases[length - m]:
                length += 1
                if length - m >= len(self.bases):
                    raise ValueError("corrupt table: no code matches")
            sym = self.offsets[length - m] + ((code - self.bases[length - m]) >> (64 - length))
            if lit_idx < self.sym_len[sym] + 1:
                break
            lit_idx -= self.sym_len[sym] + 1
            code = (code << length) & MASK64
            bit_count += length
            if bit_count >= 32:
                bit_count -= 32
                code |= _read_be(self.data, ptr, 4) << bit_count
                ptr += 4

        data = self.data
        while self.sym_len[sym] != 0:
            w = self.sym_pat + 3 * sym
            s1 = ((data[w + 1] & 0x0F) << 8) | data[w]
            if lit_idx < self.sym_len[s1] + 1:
                sym = s1
            else:
                lit_idx -= self.sym_len[s1] + 1
                sym = (data[w + 2] << 4) | (data[w + 1] >> 4)

        start = self.sym_pat + 3 * sym
        return bytes(data[start:start + 3])


def _symbol_lengths(data, pat: int, num_syms: int) -> tuple[int, ...]:
    """How many extra values each symbol expands to, walking its pair tree."""
    lengths = [-1] * num_syms
    for root in range(num_syms):
        stack = [root]
        active = {root}
        while stack:
            cur = stack[-1]
            if lengths[cur] >= 0:
                stack.pop()
                active.discard(cur)
                continue
            w = pat + 3 * cur
            right = (data[w + 2] << 4) | (data[w + 1] >> 4)
            if right == 0x0FFF:
                lengths[cur] = 0
                stack.pop()
                active.discard(cur)
                continue
            left = ((data[w + 1] & 0x0F) << 8) | data[w]
            if left >= num_syms or right >= num_syms:
                raise ValueError("corrupt table: symbol out of range")
            pending = [s for s in (left, right) if lengths[s] < 0]
            if pending:
                if any(s in active for s in pending):
                    raise ValueError("corrupt table: cyclic symbol")
                stack.extend(pending)
                active.update(pending)
                continue
            lengths[cur] = (lengths[left] + lengths[right] + 1) & 0xFF
            stack.pop()
            active.discard(cur)
    return tuple(lengths)


def setup_pairs(data, offset: int, tb_size: int, is_wdl: bool) -> tuple[PairsData, int]:
    """Parse a compression header at ``offset``.

    Returns the decoder and the offset just past the header.
    """
    try:
        flags = data[offset]
        if flags & 0x80:
            value = data[offset + 1] if is_wdl else 0
            return PairsData(data=data, flags=flags, const_value=bytes((value, 0))), offset + 2

        block_size = data[offset + 1]
        idx_bits = data[offset + 2]
        real_num_blocks = struct.unpack_from("<I", data, offset + 4)[0]
        num_blocks = real_num_blocks + data[offset + 3]
        max_len = data[offset + 8]
        min_len = data[offset + 9]
        h = max_len - min_len + 1
        if h <= 0:
            raise ValueError("corrupt table: code lengths out of order")
        offsets = struct.unpack_from(f"<{h}H", data, offset + 10)
        num_syms = struct.unpack_from("<H", data, offset + 10 + 2 * h)[0]
        if num_syms >= MAX_SYMBOLS:
            raise ValueError("corrupt table: too many symbols")
        sym_pat = offset + 12 + 2 * h
        end = sym_pat + 3 * num_syms + (num_syms & 1)
        if end > len(data):
            raise ValueError("table header is truncated")
        sym_len = _symbol_lengths(data, sym_pat, num_syms)
    except (IndexError, struct.error) as exc:
        raise ValueError("table header is truncated") from exc

    if idx_bits == 0:
        raise ValueError("corrupt table: zero index bits")

    bases = [0] * h
    for i in range(h - 2, -1, -1):
        bases[i] = ((bases[i + 1] + offsets[i] - offsets[i + 1]) & MASK64) // 2
    bases = [(b << (64 - (min_len + i))) & MASK64 for i, b in enumerate(bases)]

    num_indices = (tb_size + (1 << idx_bits) - 1) >> idx_bits
    pairs = PairsData(
        data=data,
        flags=flags,
        idx_bits=idx_bits,
        block_size=block_size,
        min_len=min_len,
        offsets=tuple(offsets),
        bases=tuple(bases),
        sym_len=sym_len,
        sym_pat=sym_pat,
        index_size=6 * num_indices,
        size_table_size=2 * num_blocks,
        data_size=real_num_blocks << block_size,
    )
    return pairs, end