"""Quality-assurance views of calibration stores.

Tabular (pandas) and graphical (matplotlib) summaries of what a calibration
pass produced: the per-event-class mean and spread of each profile component
and the number of events for which a correction could not be validated.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np
import pandas as pd

from .calibration.stores import EventClassCounter, ProfileStore


def _get_pyplot():
    """Import pyplot lazily (backend must already be configured)."""
    import matplotlib.pyplot as plt
    return plt


def _bin_label(ec_bin) -> str:
    return ",".join(str(i) for i in ec_bin)


def readings_frame(store: ProfileStore, components: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """One row per (bin, component): content, width, entries, validated."""
    comps = store.components() if components is None else [str(c) for c in components]
    rows = []
    for b in store.bins():
        for c in comps:
            r = store.read(b, c)
            if r.entries == 0:
                continue
            rows.append(
                {
                    "bin": _bin_label(b),
                    "component": c,
                    "content": r.content,
                    "width": r.width,
                    "entries": r.entries,
                    "validated": r.validated,
                }
            )
    return pd.DataFrame(rows, columns=["bin", "component", "content", "width", "entries", "validated"])


def plot_calibration_profile(store: ProfileStore, components: Sequence[str], ax=None):
    """Mean +- width of each component across event-class bins. Returns the figure."""
    plt = _get_pyplot()
    if ax is None:
        fig = plt.figure(figsize=(10.0, 4.8))
        ax = fig.add_subplot(1, 1, 1)
    else:
        fig = ax.figure

    bins = store.bins()
    x = np.arange(len(bins), dtype=float)
    for c in components:
        readings = [store.read(b, c) for b in bins]
        y = np.array([r.content if r.entries else np.nan for r in readings])
        e = np.array([r.width if r.entries else np.nan for r in readings])
        ax.errorbar(x, y, yerr=e, marker="o", linestyle="", capsize=2, label=str(c))

    ax.set_xticks(x)
    ax.set_xticklabels([_bin_label(b) for b in bins], rotation=90)
    ax.set_xlabel("event class bin")
    ax.set_ylabel("mean +- width")
    ax.set_title(store.name)
    ax.grid(True)
    if components:
        ax.legend(loc="best")
    return fig


def plot_not_validated(counter: EventClassCounter, ax=None):
    """Bar chart of not-validated entries per event-class bin. Returns the figure."""
    plt = _get_pyplot()
    if ax is None:
        fig = plt.figure(figsize=(10.0, 4.8))
        ax = fig.add_subplot(1, 1, 1)
    else:
        fig = ax.figure

    bins = counter.bins()
    x = np.arange(len(bins), dtype=float)
    ax.bar(x, [counter.count(b) for b in bins], color="orange")
    ax.set_xticks(x)
    ax.set_xticklabels([_bin_label(b) for b in bins], rotation=90)
    ax.set_xlabel("event class bin")
    ax.set_ylabel("entries")
    ax.set_title(counter.name)
    return fig
