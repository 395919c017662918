"""
Visualize catalog tile extents together with a planned retile or ROI set.
Source tiles are drawn in blue, planned clusters or ROIs in red.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import matplotlib.patches as mpatches
import matplotlib.pyplot as plt
from matplotlib.collections import PatchCollection

from .catalog import Catalog
from .geometry import Circle
from .planner import WorkUnit


def _unit_patch(unit: WorkUnit):
    if isinstance(unit.geometry, Circle):
        return mpatches.Circle((unit.geometry.x, unit.geometry.y), unit.geometry.r,
                               edgecolor='indianred', facecolor='mistyrose',
                               alpha=0.4, linewidth=2)
    xmin, xmax, ymin, ymax = unit.geometry.bounds
    return mpatches.Rectangle((xmin, ymin), xmax - xmin, ymax - ymin,
                              edgecolor='indianred', facecolor='mistyrose',
                              alpha=0.4, linewidth=2)


def plot_plan(catalog: Catalog, units: Sequence[WorkUnit], output_png: Path, label_units: bool = True) -> Path:
    """Save a PNG of the catalog tiles and the planned units."""
    all_xs = []
    all_ys = []
    for record in catalog.records:
        xmin, xmax, ymin, ymax = record.bbox
        all_xs.extend([xmin, xmax])
        all_ys.extend([ymin, ymax])
    for unit in units:
        xmin, xmax, ymin, ymax = unit.geometry.bounds
        all_xs.extend([xmin, xmax])
        all_ys.extend([ymin, ymax])

    if not all_xs:
        raise ValueError("Nothing to plot: the catalog and the plan are both empty")

    overall_xmin, overall_xmax = min(all_xs), max(all_xs)
    overall_ymin, overall_ymax = min(all_ys), max(all_ys)
    x_padding = (overall_xmax - overall_xmin) * 0.05
    y_padding = (overall_ymax - overall_ymin) * 0.05

    fig, ax = plt.subplots(1, 1, figsize=(16, 12))

    tile_patches = []
    for record in catalog.records:
        xmin, xmax, ymin, ymax = record.bbox
        tile_patches.append(mpatches.Rectangle((xmin, ymin), xmax - xmin, ymax - ymin,
                                               edgecolor='blue', facecolor='lightblue',
                                               alpha=0.5, linewidth=1.5))
    ax.add_collection(PatchCollection(tile_patches, match_original=True))

    for record in catalog.records:
        xmin, xmax, ymin, ymax = record.bbox
        ax.text((xmin + xmax) / 2, (ymin + ymax) / 2, record.name,
                ha='center', va='center', fontsize=8, color='darkblue', weight='bold',
                bbox=dict(boxstyle='round,pad=0.3', facecolor='white', alpha=0.7))

    ax.add_collection(PatchCollection([_unit_patch(u) for u in units], match_original=True))

    if label_units:
        for unit in units:
            xmin, xmax, ymin, ymax = unit.geometry.bounds
            ax.text((xmin + xmax) / 2, (ymin + ymax) / 2, unit.name,
                    ha='center', va='center', fontsize=10, color='darkred', weight='bold',
                    bbox=dict(boxstyle='round,pad=0.5', facecolor='white', alpha=0.8))

    ax.set_xlim(overall_xmin - x_padding, overall_xmax + x_padding)
    ax.set_ylim(overall_ymin - y_padding, overall_ymax + y_padding)
    ax.set_aspect('equal')
    ax.set_xlabel(f'X ({catalog.crs})', fontsize=12)
    ax.set_ylabel(f'Y ({catalog.crs})', fontsize=12)
    ax.set_title('Catalog Tiles and Planned Units\n(Blue = source tiles, Light red = planned units)',
                 fontsize=14, weight='bold')
    ax.grid(True, alpha=0.3)

    tile_legend = mpatches.Patch(color='lightblue', alpha=0.5, label='Source tile extent')
    unit_legend = mpatches.Patch(facecolor='mistyrose', edgecolor='indianred',
                                 alpha=0.4, linewidth=2, label='Planned unit (with buffer)')
    ax.legend(handles=[tile_legend, unit_legend], loc='upper right', fontsize=10)

    stats_text = f'Tiles: {len(catalog)}\nUnits: {len(units)}'
    ax.text(0.02, 0.98, stats_text, transform=ax.transAxes,
            fontsize=10, verticalalignment='top',
            bbox=dict(boxstyle='round', facecolor='wheat', alpha=0.5))

    plt.tight_layout()

    output_png = Path(output_png)
    output_png.parent.mkdir(parents=True, exist_ok=True)
    plt.savefig(output_png, dpi=150, bbox_inches='tight')
    plt.close(fig)
    print(f"\nVisualization saved to: {output_png}")
    print(f"  - {len(catalog)} source tiles (blue)")
    print(f"  - {len(units)} planned units (light red)")
    return output_png
