"""Runtime configuration for the points index server."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple


@dataclass(frozen=True)
class ServerConfig:
    """
    Where datasets live and how the tree cache is sized.

    A dataset `key` is read from `<data_prefix>/<key>/<data_suffix>`.
    """

    # Location prefix of all datasets.
    data_prefix: str = "data"

    # Path inside a dataset directory, may be empty.
    data_suffix: str = ""

    # Dataset served for the "init_id" alias.
    default_dataset: str = ""

    # Expected number of distinct datasets; not an eviction limit.
    cache_capacity: int = 16

    # Origins allowed by CORS (frontend Angular).
    cors_origins: Tuple[str, ...] = ("http://localhost:4200",)

    def __post_init__(self) -> None:
        """Validate config values once at construction time."""
        if self.cache_capacity <= 0:
            raise ValueError("cache_capacity must be > 0")

        if not isinstance(self.cors_origins, tuple):
            object.__setattr__(self, "cors_origins", tuple(self.cors_origins))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> ServerConfig:
        """Build a config from POINTS_* environment variables."""
        env = os.environ if environ is None else environ
        defaults = cls()

        origins = env.get("POINTS_CORS_ORIGINS")
        return cls(
            data_prefix=env.get("POINTS_DATA_PREFIX", defaults.data_prefix),
            data_suffix=env.get("POINTS_DATA_SUFFIX", defaults.data_suffix),
            default_dataset=env.get("POINTS_DEFAULT_DATASET", defaults.default_dataset),
            cache_capacity=int(env.get("POINTS_CACHE_CAPACITY", defaults.cache_capacity)),
            cors_origins=(
                tuple(o.strip() for o in origins.split(",") if o.strip())
                if origins is not None
                else defaults.cors_origins
            ),
        )
