"""
Configuration
=============
Settings for the question bank, environment overrides and logging setup.

Environment:
    QBANK_STORE_PATH   bank file or database path
    QBANK_BACKEND      "json" (default) or "sqlite"
    QBANK_LOG_LEVEL    DEBUG / INFO / WARNING / ERROR
    QBANK_SEED         integer seed for reproducible shuffles
"""

from __future__ import annotations

import logging
import os
import random
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

from .bank import BankManager
from .models import CAPACITY, EVICTION_CHUNK
from .storage import open_store

LOG_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

DEFAULT_STORE_PATH = str(Path.home() / ".qbank" / "questions.json")
BACKENDS = ("json", "sqlite")


@dataclass
class QBankConfig:
    """Configuration for the question bank."""

    # Storage
    store_path: str = DEFAULT_STORE_PATH
    backend: str = "json"

    # Bank limits
    capacity: int = CAPACITY
    eviction_chunk: int = EVICTION_CHUNK

    # Randomness
    seed: Optional[int] = None

    # Logging
    log_level: str = "WARNING"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls, **overrides) -> QBankConfig:
        """Build a config from QBANK_* variables, then apply non-None overrides."""
        config = cls()
        env = os.environ

        if env.get("QBANK_STORE_PATH"):
            config.store_path = env["QBANK_STORE_PATH"]
        if env.get("QBANK_BACKEND"):
            config.backend = env["QBANK_BACKEND"].lower()
        if env.get("QBANK_LOG_LEVEL"):
            config.log_level = env["QBANK_LOG_LEVEL"].upper()
        if env.get("QBANK_SEED"):
            try:
                config.seed = int(env["QBANK_SEED"])
            except ValueError:
                raise ValueError(
                    f"QBANK_SEED must be an integer, got {env['QBANK_SEED']!r}"
                ) from None

        config = replace(
            config, **{k: v for k, v in overrides.items() if v is not None}
        )

        if config.backend not in BACKENDS:
            raise ValueError(
                f"Unknown backend {config.backend!r}, expected one of {BACKENDS}"
            )
        return config

    def make_rng(self) -> random.Random:
        return random.Random(self.seed)


def setup_logging(config: QBankConfig):
    """Configure the `qbank` package logger from config."""
    log_level = getattr(logging, config.log_level.upper(), logging.WARNING)

    qbank_logger = logging.getLogger("qbank")
    qbank_logger.setLevel(log_level)

    # Console handler
    if not qbank_logger.handlers:
        console = logging.StreamHandler()
        console.setLevel(log_level)
        console.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
        qbank_logger.addHandler(console)

    # File handler
    if config.log_file:
        Path(config.log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setLevel(log_level)
        file_handler.setFormatter(
            logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)
        )
        qbank_logger.addHandler(file_handler)


def open_bank(config: QBankConfig) -> BankManager:
    """Build the configured store and load a bank from it."""
    store = open_store(config.store_path, config.backend)
    return BankManager(
        store,
        capacity=config.capacity,
        eviction_chunk=config.eviction_chunk,
    )
