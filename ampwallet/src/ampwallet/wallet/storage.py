"""
Recovery phrase storage.

The phrase is kept in plain text; the file is created once and never
overwritten.
"""

from __future__ import annotations

import os
from pathlib import Path

from loguru import logger
from mnemonic import Mnemonic

DEFAULT_SEED_FILE = Path("./seed-phrase.txt")


class SeedStorageError(Exception):
    pass


class SeedFileExistsError(SeedStorageError):
    pass


class SeedFileNotFoundError(SeedStorageError):
    pass


def generate_mnemonic(strength: int = 128) -> str:
    """Generate a BIP39 English mnemonic (128 bits of entropy by default)."""
    return Mnemonic("english").generate(strength=strength)


def mnemonic_to_seed(mnemonic: str, passphrase: str = "") -> bytes:
    """Convert BIP39 mnemonic to seed."""
    normalized = " ".join(mnemonic.split())
    if not Mnemonic("english").check(normalized):
        raise SeedStorageError("Invalid BIP39 mnemonic")
    return Mnemonic.to_seed(normalized, passphrase)


def save_mnemonic(mnemonic: str, path: Path = DEFAULT_SEED_FILE) -> Path:
    """Write a new seed file; refuses to replace an existing one."""
    if path.exists():
        raise SeedFileExistsError(f"A seed file already exists at '{path}', aborting...")

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "x", encoding="utf-8") as f:
        f.write(mnemonic)
    os.chmod(path, 0o600)

    logger.info(f"Seed phrase saved to {path}")
    return path


def load_mnemonic(path: Path = DEFAULT_SEED_FILE) -> str:
    if not path.exists():
        raise SeedFileNotFoundError(f"Seed file not found: {path}")
    return path.read_text(encoding="utf-8").strip()
