from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from numpy.typing import NDArray

# headless; the simulation core never draws, only scripts import this module
import matplotlib
matplotlib.use("Agg", force=True)
import matplotlib.pyplot as plt


@dataclass(frozen=True)
class FigureConfig:
    fmt: str = "png"
    dpi: int = 150
    fontsize: float = 9.0
    drift_figsize: Tuple[float, float] = (5.0, 3.0)
    trail_figsize: Tuple[float, float] = (5.0, 5.0)
    trail_lw: float = 0.5
    trail_alpha: float = 0.7
    drift_floor: float = 1e-16   # |drift| below this is drawn at the floor on the log axis
    background: str = "white"


def apply_style(cfg: FigureConfig) -> None:
    small = max(6.0, cfg.fontsize - 1.0)
    plt.rcParams.update({
        "savefig.dpi": cfg.dpi,
        "font.size": cfg.fontsize,
        "axes.titlesize": cfg.fontsize,
        "legend.fontsize": small,
        "xtick.labelsize": small,
        "ytick.labelsize": small,
        "axes.grid": True,
        "grid.alpha": 0.3,
        "figure.facecolor": cfg.background,
        "legend.frameon": False,
    })


def new_figure(cfg: FigureConfig, kind: str = "drift") -> Tuple[plt.Figure, plt.Axes]:
    size = cfg.trail_figsize if kind == "trails" else cfg.drift_figsize
    return plt.subplots(figsize=size)


def save_figure(fig: plt.Figure, out_dir: str, stem: str, cfg: FigureConfig) -> str:
    """Write `<out_dir>/<stem>.<fmt>` (directory created on demand), close the figure, return the path."""
    os.makedirs(out_dir, exist_ok=True)
    path = os.path.join(out_dir, f"{stem}.{cfg.fmt}")
    fig.savefig(path, bbox_inches="tight", dpi=cfg.dpi)
    plt.close(fig)
    return path


def plot_energy_drift(df: pd.DataFrame, ax: Optional[plt.Axes] = None, label: Optional[str] = None,
                      cfg: FigureConfig = FigureConfig()) -> plt.Axes:
    """|drift| against time on a log axis; merger ticks marked."""
    if ax is None:
        _, ax = new_figure(cfg, "drift")
    drift = np.abs(df["drift"].to_numpy(dtype=float))
    ax.semilogy(df["t"], np.maximum(drift, cfg.drift_floor), label=label)
    if "n_mergers" in df:
        jumps = df["t"][df["n_mergers"].diff().fillna(0) > 0]
        for t in jumps:
            ax.axvline(t, color="k", ls=":", lw=0.8)
    ax.set_xlabel("t")
    ax.set_ylabel("|energy drift|")
    return ax


def plot_trails(trails: Sequence[NDArray[np.float64]],
                bodies: Sequence[tuple],
                horizon_radii: Optional[Sequence[float]] = None,
                ax: Optional[plt.Axes] = None,
                cfg: FigureConfig = FigureConfig()) -> plt.Axes:
    """Particle trails plus body markers; bodies are (id, x, y, mass, spin) tuples."""
    if ax is None:
        _, ax = new_figure(cfg, "trails")
    for t in trails:
        if len(t) > 1:
            ax.plot(t[:, 0], t[:, 1], lw=cfg.trail_lw, alpha=cfg.trail_alpha)
    for k, (bid, x, y, m, _spin) in enumerate(bodies):
        if horizon_radii is not None:
            ax.add_patch(plt.Circle((x, y), horizon_radii[k], color="k"))
        ax.plot([x], [y], "k+")
        ax.annotate(str(bid), (x, y), textcoords="offset points", xytext=(3, 3), fontsize=7)
    ax.set_aspect("equal")
    ax.set_xlabel("x")
    ax.set_ylabel("y")
    return ax
