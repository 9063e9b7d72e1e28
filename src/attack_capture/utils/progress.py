from __future__ import annotations
from typing import Optional
from tqdm import tqdm

def frame_progress(desc: str = "",
                   total: Optional[int] = None,
                   unit: str = "pkt",
                   disable: bool = False) -> tqdm:
    """Manually updated bar for callback-driven loops that have no iterable."""
    return tqdm(
        desc=desc, total=total, unit=unit, leave=False, disable=disable,
        dynamic_ncols=True, smoothing=0.1, mininterval=0.1,
        bar_format="{desc}: {n_fmt} {unit} • {elapsed} • {rate_fmt}"
    )
