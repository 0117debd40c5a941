# chessprobe

Building blocks for the evaluation and endgame side of a chess engine:

- `chessprobe.attacks`: bitboard helpers and attack generation.
- `chessprobe.position`: a compact position type with move encoding,
  pseudo-legal and legal move generation, check and mate detection, and
  material keys.
- `chessprobe.halfkp`: HalfKP feature indices and an accumulator stack that
  is updated incrementally as moves are made and unmade.
- `chessprobe.nnue`: a quantised HalfKP network. It loads weights and runs
  the forward pass.
- `chessprobe.codec`: the index encodings and the pair-compressed block
  decoder used by Syzygy endgame table files.

## Installation

```
pip install .
```

The only runtime dependency is `numpy`. The `test` extra adds `pytest`:

```
pip install .[test]
```

## Bitboards and attacks

Squares run from 0 (a1) to 63 (h8). Bitboards are plain Python integers.
The colour constants are `WHITE = 1` and `BLACK = 0`.

```python
from chessprobe.attacks import WHITE, iter_squares, knight_attacks, rook_attacks, popcount

print(list(iter_squares(knight_attacks(0))))   # [10, 17]
print(popcount(rook_attacks(0, 0)))            # 14
```

`lsb` and `msb` raise `ValueError` when they are given an empty bitboard.

## Positions and moves

A `Position` is a frozen dataclass. It holds one bitboard per colour and per
piece type, the fifty-move counter `rule50`, the en-passant square `ep` (0
when there is none) and `turn`, which is `True` when White is to move.

```python
from chessprobe.position import Position, make_move, move_from, move_to

pos = Position(
    white=(1 << 4) | (1 << 12),   # Ke1, pawn e2
    black=1 << 60,                # Ke8
    kings=(1 << 4) | (1 << 60),
    queens=0, rooks=0, bishops=0, knights=0,
    pawns=1 << 12,
    rule50=0, ep=0, turn=True,
)

for move in pos.legal_moves():
    print(move_from(move), move_to(move))

after = pos.apply(make_move(0, 12, 28))   # e2-e4
print(after.turn, after.is_check(), after.is_mate())
```

A move is a 16-bit integer built with `make_move(promote, from_sq, to_sq)`.
The promotion codes are 0 for none, then 1 queen, 2 rook, 3 bishop and
4 knight. `apply` returns a new position and does not check legality. Call
`is_legal()` on the result, or use `is_legal_move(move)` on the position
before the move. Castling moves are never generated.

`captures()` returns pseudo-legal captures, `moves()` returns all
pseudo-legal moves, and `legal_moves()` keeps only the legal ones.
`calc_key(mirror)`, `calc_key_from_pcs` and `calc_key_from_pieces` compute
the 64-bit material signatures that tablebase files are keyed by.

## NNUE evaluation

```python
from chessprobe.nnue import Network

network = Network.load("network.nnue")   # or Network.from_bytes(data)
stack = network.new_stack()

mg, eg = network.evaluate(stack, pos)    # a Position or a halfkp.BoardState
```

A network file is read in this order: input biases and weights (16-bit),
the first hidden layer's biases (32-bit) and weights (8-bit), then the float
biases and weights of the second hidden layer and the output layer. All
values are little-endian. A file that is too short, or that cannot be read,
raises `NNUEError`. Bytes after the last section are ignored.

`evaluate` returns a `(midgame, endgame)` pair of centipawn scores for the
side to move, each clamped to [-2000, 2000]. A position with only the two
kings scores `(0, 0)`. `forward(us, them)` gives the raw network output for
two accumulator vectors.

### Accumulator stack

`AccumulatorStack` (from `chessprobe.halfkp`) keeps one accumulator per ply.
While searching:

- call `push()` before making a move;
- record each changed piece with `move_piece`, `add_piece` or
  `remove_piece`, with at most three changes per ply (`remove_piece` with a
  piece type of `None` does nothing);
- call `pop()` when the move is unmade. Popping the root raises
  `IndexError`.

`ensure(board)` brings both perspectives up to date. It updates them
incrementally from the nearest accurate ancestor when the side's own king
has not moved in between. Otherwise it rebuilds them through a cache kept
for each king square. `reset()` clears the cache back to the biases.

## Tablebase decoding

`chessprobe.codec` holds the low-level pieces needed to read values out of
Syzygy table data:

- `EntryShape` describes a table's material: the piece count, whether the
  two-king encoding applies, and the pawn counts.
- `build_enc_info(data, offset, shape, shift, t, enc)` reads a table's piece
  order and returns an `EncInfo` with its grouping, factors and index size.
- `leading_pawn(squares, shape, enc)` picks the table number for pawn
  tables, and `encode(squares, info, shape, enc)` turns a placement into its
  dense index.
- `setup_pairs(data, offset, tb_size, is_wdl)` parses a compression header
  and returns a `PairsData` together with the offset just past the header.
  Once the caller has set the decoder's `index_offset`, `size_offset` and
  `data_offset`, `PairsData.decompress(idx)` returns the stored three-byte
  symbol pattern.

Corrupt or truncated data raises `ValueError`.

## What this package does not do

The package does not find tablebase files on disk, lay out their sections,
or answer win/draw/loss and distance-to-zero queries for a position. It
does not rank root moves from tables either. `chessprobe.codec` supplies
the indexing and decoding those tasks are built on, but the file handling
and the probing search are not included. There is no command-line program.