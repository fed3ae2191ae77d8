#!/usr/bin/env python
from __future__ import annotations

import os
import argparse

import numpy as np
import pandas as pd

from bhsim.diagnostics import BODY_COLUMNS
from bhsim.plotting import FigureConfig, apply_style, new_figure, save_figure, plot_energy_drift, plot_trails


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--run_dir", required=True, help="Output directory of scripts/run_orbit.py")
    ap.add_argument("--fig_dir", default=None)
    ap.add_argument("--fmt", default="png")
    args = ap.parse_args()

    cfg = FigureConfig(fmt=args.fmt)
    apply_style(cfg)
    fig_dir = args.fig_dir or os.path.join(args.run_dir, "figures")

    df = pd.read_csv(os.path.join(args.run_dir, "diagnostics.csv"))
    fig, ax = new_figure(cfg, "drift")
    plot_energy_drift(df, ax=ax, cfg=cfg)
    print("Saved:", save_figure(fig, fig_dir, "energy_drift", cfg))

    trails_path = os.path.join(args.run_dir, "trails.npz")
    bodies_path = os.path.join(args.run_dir, "bodies.csv")
    if os.path.exists(trails_path) and os.path.exists(bodies_path):
        with np.load(trails_path) as z:
            trails = [z[k] for k in z.files]
        bdf = pd.read_csv(bodies_path)
        bodies = list(bdf[BODY_COLUMNS].itertuples(index=False, name=None))
        fig, ax = new_figure(cfg, "trails")
        plot_trails(trails, bodies, ax=ax, cfg=cfg)
        print("Saved:", save_figure(fig, fig_dir, "trails", cfg))


if __name__ == "__main__":
    main()
