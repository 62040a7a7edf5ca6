"""Configuration and logging set-up of the memory module."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from segmem.model import AllocationAlgorithm

_LOG_FORMAT = "[%(levelname)s] %(asctime)s %(name)s - %(message)s"


def load_properties(path: str | Path) -> dict[str, str]:
    """Read a ``KEY=VALUE`` file; blank lines and ``#`` comments are skipped."""
    properties: dict[str, str] = {}
    with open(path, encoding="utf-8") as handle:
        for raw in handle:
            line = raw.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = line.split("=", 1)
            properties[key.strip()] = value.strip()
    return properties


def setup_logger(path: str | Path, name: str) -> logging.Logger:
    """Return a logger named ``name`` writing every level to ``path`` and stdout."""
    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    formatter = logging.Formatter(_LOG_FORMAT)
    for handler in (
        logging.FileHandler(path, encoding="utf-8"),
        logging.StreamHandler(sys.stdout),
    ):
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.info("Logger created")
    return logger


@dataclass(frozen=True)
class MemoryConfig:
    """Settings of the memory module."""

    port: str
    memory_size: int
    segment_zero_size: int
    segment_count: int
    memory_delay: int
    compaction_delay: int
    algorithm: AllocationAlgorithm

    @classmethod
    def from_mapping(cls, values: Mapping[str, str]) -> "MemoryConfig":
        """Build the settings from the keys of a configuration file."""

        def get(key: str) -> str:
            try:
                return values[key]
            except KeyError:
                raise ValueError(f"missing configuration key {key}") from None

        def number(key: str) -> int:
            text = get(key)
            try:
                return int(text)
            except ValueError:
                raise ValueError(f"{key} must be an integer, not {text!r}") from None

        return cls(
            port=get("PUERTO_ESCUCHA"),
            memory_size=number("TAM_MEMORIA"),
            segment_zero_size=number("TAM_SEGMENTO_0"),
            segment_count=number("CANT_SEGMENTOS"),
            memory_delay=number("RETARDO_MEMORIA"),
            compaction_delay=number("RETARDO_COMPACTACION"),
            algorithm=AllocationAlgorithm.from_name(get("ALGORITMO_ASIGNACION")),
        )

    @classmethod
    def from_file(cls, path: str | Path) -> "MemoryConfig":
        """Read the settings from a configuration file."""
        return cls.from_mapping(load_properties(path))

    def log(self, logger: logging.Logger) -> None:
        """Write every setting to ``logger``."""
        logger.info("-------Configuration values-------")
        logger.info("listening port = %s", self.port)
        logger.info("memory size = %s", self.memory_size)
        logger.info("segment zero size = %s", self.segment_zero_size)
        logger.info("segment count = %s", self.segment_count)
        logger.info("memory delay = %s", self.memory_delay)
        logger.info("compaction delay = %s", self.compaction_delay)
        logger.info("allocation algorithm = %s", self.algorithm.name)
        logger.info("----------------------------------")