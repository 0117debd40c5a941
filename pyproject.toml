[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "chessprobe"
version = "0.1.0"
description = "Bitboard move generation, HalfKP NNUE evaluation and endgame tablebase index decoding for chess"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = ["chess", "syzygy", "tablebase", "endgame", "nnue", "halfkp", "bitboard"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Games/Entertainment :: Board Games",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["chessprobe"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
ignore_missing_imports = true
