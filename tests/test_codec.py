import math
import random
import struct

import pytest

from chessprobe.attacks import king_attacks
from chessprobe.codec import (
    Encoding,
    EntryShape,
    build_enc_info,
    encode,
    leading_pawn,
    setup_pairs,
    subfactor,
)


def _mirror_file(squares):
    return [sq ^ 7 for sq in squares]


def _mirror_rank(squares):
    return [sq ^ 56 for sq in squares]


def _transpose(squares):
    return [(sq % 8) * 8 + sq // 8 for sq in squares]


def _header(block_size, idx_bits, real_blocks, min_len, offsets, sym_pats):
    max_len = min_len + len(offsets) - 1
    out = bytes([0, block_size, idx_bits, 0]) + struct.pack("<I", real_blocks)
    out += bytes([max_len, min_len])
    out += b"".join(struct.pack("<H", o) for o in offsets)
    out += struct.pack("<H", len(sym_pats))
    for pat in sym_pats:
        out += bytes(pat)
    if len(sym_pats) & 1:
        out += b"\0"
    return out


def _assemble(header, idx_bits, count, bitstring, block_bytes=16):
    index = struct.pack("<IH", 0, 1 << (idx_bits - 1))
    sizes = struct.pack("<H", count - 1)
    block = int(bitstring.ljust(block_bytes * 8, "0"), 2).to_bytes(block_bytes, "big")
    return header + index + sizes + block


@pytest.mark.parametrize("k", range(1, 7))
def test_subfactor_counts_placements(k):
    for n in range(k, 65):
        assert subfactor(k, n) == math.comb(n, k)


def test_build_enc_info_three_piece_table():
    shape = EntryShape(num=3)
    info = build_enc_info(bytes([0, 6, 5, 14]), 0, shape, 0, 0, Encoding.PIECE)
    assert info.pieces == (6, 5, 14)
    assert info.factor[0] == 1
    assert info.size == 31332


def test_build_enc_info_reads_high_nibble_with_shift():
    shape = EntryShape(num=3)
    low = build_enc_info(bytes([0, 6, 5, 14]), 0, shape, 0, 0, Encoding.PIECE)
    high = build_enc_info(bytes([0x00, 0x60, 0x50, 0xE0]), 0, shape, 4, 0, Encoding.PIECE)
    assert high.pieces == low.pieces
    assert high.size == low.size


def test_build_enc_info_two_king_encoding():
    shape = EntryShape(num=4, kk_enc=True)
    info = build_enc_info(bytes([0, 6, 14, 4, 4]), 0, shape, 0, 0, Encoding.PIECE)
    assert info.norm[0] == 2
    assert info.norm[2] == 2
    assert info.size == 462 * math.comb(62, 2)


def test_build_enc_info_truncated_header():
    with pytest.raises(ValueError):
        build_enc_info(bytes([0, 6]), 0, EntryShape(num=3), 0, 0, Encoding.PIECE)


def test_piece_encoding_range_and_symmetry():
    shape = EntryShape(num=3)
    info = build_enc_info(bytes([0, 6, 5, 14]), 0, shape, 0, 0, Encoding.PIECE)
    rng = random.Random(1234)
    for _ in range(300):
        squares = rng.sample(range(64), 3)
        idx = encode(squares, info, shape, Encoding.PIECE)
        assert 0 <= idx < info.size
        assert encode(_mirror_file(squares), info, shape, Encoding.PIECE) == idx
        assert encode(_mirror_rank(squares), info, shape, Encoding.PIECE) == idx
        assert encode(_transpose(squares), info, shape, Encoding.PIECE) == idx


def test_two_king_encoding_range_and_mirrors():
    shape = EntryShape(num=4, kk_enc=True)
    info = build_enc_info(bytes([0, 6, 14, 4, 4]), 0, shape, 0, 0, Encoding.PIECE)
    rng = random.Random(99)
    checked = 0
    while checked < 200:
        squares = rng.sample(range(64), 4)
        if king_attacks(squares[0]) >> squares[1] & 1:
            continue
        idx = encode(squares, info, shape, Encoding.PIECE)
        assert 0 <= idx < info.size
        assert encode(_mirror_file(squares), info, shape, Encoding.PIECE) == idx
        assert encode(_mirror_rank(squares), info, shape, Encoding.PIECE) == idx
        checked += 1


def test_encode_does_not_modify_input():
    shape = EntryShape(num=3)
    info = build_enc_info(bytes([0, 6, 5, 14]), 0, shape, 0, 0, Encoding.PIECE)
    squares = [60, 45, 2]
    encode(squares, info, shape, Encoding.PIECE)
    assert squares == [60, 45, 2]


def test_encode_needs_every_square():
    shape = EntryShape(num=3)
    info = build_enc_info(bytes([0, 6, 5, 14]), 0, shape, 0, 0, Encoding.PIECE)
    with pytest.raises(ValueError):
        encode([1, 2], info, shape, Encoding.PIECE)


def test_leading_pawn_file_and_rank():
    shape = EntryShape(num=3, pawns=(1, 0))
    t, squares = leading_pawn([12, 0, 63], shape, Encoding.FILE)
    assert t == 3
    assert squares == [12, 0, 63]
    t, _ = leading_pawn([12, 0, 63], shape, Encoding.RANK)
    assert t == 0


def test_leading_pawn_moves_lowest_flap_first():
    shape = EntryShape(num=4, pawns=(2, 0))
    t, squares = leading_pawn([9, 8, 0, 63], shape, Encoding.FILE)
    assert squares[0] == 8
    assert sorted(squares[:2]) == [8, 9]
    assert t == leading_pawn([8, 9, 0, 63], shape, Encoding.FILE)[0]


def test_leading_pawn_rejects_piece_encoding():
    with pytest.raises(ValueError):
        leading_pawn([0, 1, 2], EntryShape(num=3), Encoding.PIECE)


def test_file_pawn_encoding_range_and_mirror():
    shape = EntryShape(num=3, pawns=(1, 0))
    infos = [
        build_enc_info(bytes([0, 1, 6, 14]), 0, shape, 0, t, Encoding.FILE) for t in range(4)
    ]
    rng = random.Random(7)
    for _ in range(300):
        pawn = rng.randrange(8, 56)
        kings = rng.sample([sq for sq in range(64) if sq != pawn], 2)
        t, squares = leading_pawn([pawn, *kings], shape, Encoding.FILE)
        idx = encode(squares, infos[t], shape, Encoding.FILE)
        assert 0 <= idx < infos[t].size
        mt, mirrored = leading_pawn(_mirror_file(squares), shape, Encoding.FILE)
        assert mt == t
        assert encode(mirrored, infos[mt], shape, Encoding.FILE) == idx


def test_rank_pawn_encoding_range():
    shape = EntryShape(num=3, pawns=(1, 0))
    infos = [
        build_enc_info(bytes([0, 1, 6, 14]), 0, shape, 0, t, Encoding.RANK) for t in range(6)
    ]
    rng = random.Random(8)
    for _ in range(300):
        pawn = rng.randrange(8, 56)
        kings = rng.sample([sq for sq in range(64) if sq != pawn], 2)
        t, squares = leading_pawn([pawn, *kings], shape, Encoding.RANK)
        idx = encode(squares, infos[t], shape, Encoding.RANK)
        assert 0 <= idx < infos[t].size


def test_two_sided_pawn_encoding_range():
    shape = EntryShape(num=4, pawns=(1, 1))
    infos = [
        build_enc_info(bytes([0, 1, 1, 9, 6, 14]), 0, shape, 0, t, Encoding.FILE)
        for t in range(4)
    ]
    assert infos[0].pieces == (1, 9, 6, 14)
    rng = random.Random(11)
    for _ in range(300):
        pawns = rng.sample(range(8, 56), 2)
        kings = rng.sample([sq for sq in range(64) if sq not in pawns], 2)
        t, squares = leading_pawn([*pawns, *kings], shape, Encoding.FILE)
        idx = encode(squares, infos[t], shape, Encoding.FILE)
        assert 0 <= idx < infos[t].size


def test_constant_table_wdl_and_other():
    pairs, end = setup_pairs(bytes([0x80, 3]), 0, 100, True)
    assert end == 2
    assert pairs.flags == 0x80
    assert pairs.decompress(57)[0] == 3
    other, _ = setup_pairs(bytes([0x80, 3]), 0, 100, False)
    assert other.decompress(5)[0] == 0


def test_single_bit_codes_decode_stream():
    bits = "1011001110001111"
    leaf0 = (0x00, 0xF0, 0xFF)
    leaf1 = (0x01, 0xF0, 0xFF)
    header = _header(4, 6, 1, 1, [0], [leaf0, leaf1])
    data = _assemble(header, 6, len(bits), bits)

    pairs, end = setup_pairs(data, 0, len(bits), True)
    assert end == len(header)
    assert pairs.index_size == 6
    assert pairs.size_table_size == 2
    assert pairs.data_size == 16

    pairs.index_offset = end
    pairs.size_offset = end + pairs.index_size
    pairs.data_offset = pairs.size_offset + pairs.size_table_size
    assert [pairs.decompress(i)[0] for i in range(len(bits))] == [int(b) for b in bits]


def test_pair_symbols_expand_to_two_values():
    leaf_a = (5, 0xF0, 0xFF)
    leaf_b = (9, 0xF0, 0xFF)
    pair = (0x00, 0x10, 0x00)
    codes = {0: "00", 1: "01", 2: "1"}
    expansion = {0: [leaf_a[0]], 1: [leaf_b[0]], 2: [leaf_a[0], leaf_b[0]]}
    stream = [0, 2, 2, 1]
    expected = [v for sym in stream for v in expansion[sym]]
    bits = "".join(codes[sym] for sym in stream)

    header = _header(4, 6, 1, 1, [2, 0], [leaf_a, leaf_b, pair])
    data = _assemble(header, 6, len(expected), bits)

    pairs, end = setup_pairs(data, 0, len(expected), True)
    assert end == len(header)
    assert pairs.sym_len == (0, 0, 1)
    pairs.index_offset = end
    pairs.size_offset = end + pairs.index_size
    pairs.data_offset = pairs.size_offset + pairs.size_table_size
    assert [pairs.decompress(i)[0] for i in range(len(expected))] == expected


def test_setup_pairs_rejects_truncated_header():
    with pytest.raises(ValueError):
        setup_pairs(bytes([0, 4, 6]), 0, 10, True)


def test_setup_pairs_rejects_symbol_out_of_range():
    bad_pair = (0x05, 0x00, 0x00)
    header = _header(4, 6, 1, 1, [0], [bad_pair, (0, 0xF0, 0xFF)])
    with pytest.raises(ValueError):
        setup_pairs(header, 0, 4, True)