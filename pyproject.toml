[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ledgerio"
version = "0.1.0"
description = "Buffered file I/O with positioned access and range locks, a fixed-width account database, and concurrent transfer workloads built on them"
requires-python = ">=3.10"
dependencies = []
keywords = ["io", "buffering", "pread", "pwrite", "file-locking", "ledger", "elf", "paging"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries",
    "Topic :: System :: Filesystems",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
ftxxfer = "ledgerio.transfers:main_xfer"
ftxunlocked = "ledgerio.transfers:main_unlocked"
ftxrocket = "ledgerio.transfers:main_rocket"
ftxblockchain = "ledgerio.transfers:main_blockchain"

[tool.hatch.build.targets.wheel]
packages = ["ledgerio"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"
