"""Visualization module for dipole magnet pair simulations.

This module provides plotting functions for recorded interaction histories:
- Interaction plot: force, torque and field components over time
- Separation plot: dipole separation and force magnitude on log-log axes,
  with the ideal 1/d⁴ reference line

Design principles:
- Consistent component colors (x=red, y=green, z=blue)
- High-DPI output (dpi=150)
- Grid lines and units on every axis
"""

from typing import Dict
from pathlib import Path
import numpy as np
import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402

COMPONENT_COLORS = ('tab:red', 'tab:green', 'tab:blue')
COMPONENT_LABELS = ('x', 'y', 'z')


def plot_interaction(
    history: Dict[str, np.ndarray],
    output_path: str,
    dpi: int = 150
) -> None:
    """Plot force, torque and field components against time.

    Parameters
    ----------
    history : Dict[str, np.ndarray]
        From dynamics.integrate_pair(). Uses 't', 'force', 'torque',
        'field' and 'valid'.
    output_path : str
        Output file path (e.g., "output/interaction.png").
    dpi : int, optional
        Output resolution (default: 150).

    Notes
    -----
    Skipped ticks (coincident dipoles) are left out of every panel.
    """
    valid = np.asarray(history['valid'], dtype=bool)
    t = np.asarray(history['t'])[valid]

    panels = (
        ('force', 'Force on parent [N]', 'world frame'),
        ('torque', 'Torque on parent [N·m]', 'world frame'),
        ('field', 'Field at parent [T]', 'parent body frame'),
    )

    fig, axes = plt.subplots(3, 1, figsize=(10, 10), sharex=True)

    for ax, (key, ylabel, frame) in zip(axes, panels):
        data = np.asarray(history[key])[valid]
        for k in range(3):
            ax.plot(t, data[:, k], color=COMPONENT_COLORS[k],
                    linewidth=1.2, label=COMPONENT_LABELS[k])
        ax.set_ylabel(ylabel, fontsize=11)
        ax.set_title(f"{key.capitalize()} ({frame})", fontsize=12)
        ax.legend(loc='best', fontsize=9)
        ax.grid(True, alpha=0.3)

    axes[-1].set_xlabel('Sim time [s]', fontsize=11)
    plt.tight_layout()

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    plt.savefig(output_path, dpi=dpi, bbox_inches='tight')
    plt.close(fig)

    print(f"Saved interaction plot to {output_path}")


def plot_separation(
    history: Dict[str, np.ndarray],
    output_path: str,
    dpi: int = 150
) -> None:
    """Two-panel plot of separation over time and |F| against separation.

    The lower panel overlays a d⁻⁴ line through the first valid sample,
    so departures from the point-dipole law for this geometry are visible.
    """
    valid = np.asarray(history['valid'], dtype=bool)
    t = np.asarray(history['t'])[valid]
    d = np.asarray(history['separation'])[valid]
    f_mag = np.linalg.norm(np.asarray(history['force'])[valid], axis=1)

    fig, (ax1, ax2) = plt.subplots(2, 1, figsize=(10, 9))

    ax1.plot(t, d, 'k-', linewidth=1.5)
    ax1.set_xlabel('Sim time [s]', fontsize=11)
    ax1.set_ylabel('Separation [m]', fontsize=11)
    ax1.set_title('Dipole separation', fontsize=12, fontweight='bold')
    ax1.grid(True, alpha=0.3)

    mask = (d > 0) & (f_mag > 0)
    if np.any(mask):
        ax2.loglog(d[mask], f_mag[mask], 'b.', markersize=3, label='|F| simulated')
        d0, f0 = d[mask][0], f_mag[mask][0]
        d_ref = np.linspace(d[mask].min(), d[mask].max(), 50)
        ax2.loglog(d_ref, f0 * (d0 / d_ref) ** 4, 'r--', linewidth=1.0, label=r'$\propto d^{-4}$')
        ax2.legend(loc='best', fontsize=10)
    ax2.set_xlabel('Separation [m]', fontsize=11)
    ax2.set_ylabel('|F| [N]', fontsize=11)
    ax2.set_title('Force magnitude vs separation', fontsize=12)
    ax2.grid(True, which='both', alpha=0.3)

    plt.tight_layout()

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    plt.savefig(output_path, dpi=dpi, bbox_inches='tight')
    plt.close(fig)

    print(f"Saved separation plot to {output_path}")


PLOTTERS = {
    'interaction': plot_interaction,
    'separation': plot_separation,
}
