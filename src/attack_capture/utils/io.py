"""I/O helpers for capture files and record exports."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Optional

import pandas as pd


def ensure_dir(path: Path) -> None:
    """Ensure that a directory exists."""

    path.mkdir(parents=True, exist_ok=True)


def temporary_capture_path(directory: Optional[Path] = None, suffix: str = ".pcap") -> Path:
    """Reserve a unique host path for a copied capture file."""

    handle, name = tempfile.mkstemp(prefix="capture-", suffix=suffix, dir=directory)
    os.close(handle)
    return Path(name)


def save_dataframe(path: Path, frame: pd.DataFrame) -> None:
    """Persist a dataframe as Parquet or CSV depending on the file suffix."""

    ensure_dir(path.parent)
    if path.suffix == ".parquet":
        frame.to_parquet(path, index=False)
    else:
        frame.to_csv(path, index=False)


def load_dataframe(path: Path) -> pd.DataFrame:
    """Load a dataframe written by :func:`save_dataframe`."""

    if path.suffix == ".parquet":
        return pd.read_parquet(path)
    return pd.read_csv(path)
