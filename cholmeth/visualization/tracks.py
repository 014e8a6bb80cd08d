"""
Multi-track figure of one differentially methylated region.

Track assembly (:class:`RegionTracks`) is kept apart from drawing
(:func:`render_region`) so the selected window, annotation layers and
methylation signal can be checked without rendering.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import matplotlib.pyplot as plt
import pandas as pd
from matplotlib.gridspec import GridSpec
from matplotlib.lines import Line2D
from matplotlib.patches import Rectangle

from .style import get_color_palette, group_color, save_figure, setup_publication_style

logger = logging.getLogger(__name__)

Window = Tuple[str, int, int]

DEFAULT_TRACK_HEIGHTS = {
    "axis": 0.5,
    "genes": 1.0,
    "cpg_islands": 0.5,
    "dnase": 0.5,
    "methylation": 3.0,
}


def display_window(region: pd.Series, padding: float = 0.25) -> Window:
    """
    Pad a region on both sides by a fraction of its width.

    Args:
        region: Row with chr, start, end
        padding: Fraction of the region width added on each side

    Returns:
        Tuple of (chr, start, end); start is never below 0
    """
    if padding < 0:
        raise ValueError(f"padding must be non-negative, got {padding}")
    start, end = int(region["start"]), int(region["end"])
    if end < start:
        raise ValueError(f"Region end {end} is before start {start}")
    pad = int(round((end - start) * padding))
    return str(region["chr"]), max(0, start - pad), end + pad


def overlapping(intervals: pd.DataFrame, window: Window) -> pd.DataFrame:
    """Rows of an interval table that overlap the window."""
    chrom, start, end = window
    mask = (
        (intervals["chr"] == chrom)
        & (intervals["end"] >= start)
        & (intervals["start"] <= end)
    )
    return intervals[mask].reset_index(drop=True)


@dataclass
class RegionPlotData:
    """Everything needed to draw one region."""

    region: pd.Series
    window: Window
    genes: pd.DataFrame
    cpg_islands: pd.DataFrame
    dnase: pd.DataFrame
    beta: pd.DataFrame
    positions: pd.Series
    groups: pd.Series
    tracks: List[Tuple[str, float]] = field(default_factory=list)


class RegionTracks:
    """
    Assemble the tracks of a region figure.
    """

    def __init__(self, config: Optional[Any] = None):
        """
        Initialize with the ``viz_params`` section of a Config.

        Args:
            config: Configuration object (defaults used when None)
        """
        self.padding = 0.25
        self.track_heights = dict(DEFAULT_TRACK_HEIGHTS)
        if config is not None and hasattr(config, "viz_params"):
            self.padding = config.viz_params.get("padding", self.padding)
            self.track_heights.update(config.viz_params.get("track_heights", {}))

    @staticmethod
    def select_region(
        regions: pd.DataFrame,
        selection: Union[int, Window]
    ) -> pd.Series:
        """
        Pick a region by row index or by (chr, start, end) coordinates.
        """
        if isinstance(selection, tuple):
            chrom, start, end = selection
            return pd.Series({"chr": chrom, "start": int(start), "end": int(end)}, name="custom")

        if not 0 <= selection < len(regions):
            raise IndexError(f"Region index {selection} out of range ({len(regions)} regions)")
        return regions.iloc[selection]

    def build(
        self,
        regions: pd.DataFrame,
        selection: Union[int, Window],
        beta: pd.DataFrame,
        groups: pd.Series,
        annotation: pd.DataFrame,
        genes: pd.DataFrame,
        cpg_islands: pd.DataFrame,
        dnase: pd.DataFrame
    ) -> RegionPlotData:
        """
        Restrict annotation layers and signal to one region.

        Args:
            regions: Region table (chr, start, end)
            selection: Region index or (chr, start, end)
            beta: Beta values, probes as rows
            groups: Group label per sample id
            annotation: Probe annotation with chr and pos
            genes: Gene models (chr, start, end, strand, name)
            cpg_islands: CpG island intervals
            dnase: Regulatory element intervals

        Returns:
            RegionPlotData with tracks in drawing order
        """
        region = self.select_region(regions, selection)
        window = display_window(region, self.padding)
        chrom, start, end = str(region["chr"]), int(region["start"]), int(region["end"])

        coords = annotation.reindex(beta.index)[["chr", "pos"]].dropna()
        inside = coords[
            (coords["chr"] == chrom) & (coords["pos"] >= start) & (coords["pos"] <= end)
        ].sort_values("pos", kind="mergesort")
        if inside.empty:
            raise ValueError(f"No probes of the beta matrix fall inside region {chrom}:{start}-{end}")

        data = RegionPlotData(
            region=region,
            window=window,
            genes=overlapping(genes, window),
            cpg_islands=overlapping(cpg_islands, window),
            dnase=overlapping(dnase, window),
            beta=beta.loc[inside.index],
            positions=inside["pos"].astype(int),
            groups=groups.reindex(beta.columns),
            tracks=[(name, float(self.track_heights[name])) for name in DEFAULT_TRACK_HEIGHTS],
        )
        logger.info(
            f"Region {chrom}:{start}-{end}: window {window[1]}-{window[2]}, "
            f"{len(inside)} probes, {len(data.genes)} genes, "
            f"{len(data.cpg_islands)} CpG islands, {len(data.dnase)} DNase clusters"
        )
        return data


def _draw_intervals(ax, intervals: pd.DataFrame, color: str, label: str, with_names: bool = False):
    for i, row in enumerate(intervals.itertuples(index=False)):
        y = 0.2 + 0.6 * (i % 2) if with_names else 0.25
        ax.add_patch(Rectangle((row.start, y), row.end - row.start, 0.3 if with_names else 0.5,
                               color=color, alpha=0.8, linewidth=0))
        if with_names and hasattr(row, "name"):
            strand = getattr(row, "strand", None)
            text = f"{row.name} ({strand})" if strand in ("+", "-") else str(row.name)
            ax.text(row.start, y + 0.32, text, fontsize=7, va="bottom")
    ax.set_ylim(0, 1.2 if with_names else 1)
    ax.set_yticks([])
    ax.set_ylabel(label, rotation=0, ha="right", va="center")
    ax.spines["left"].set_visible(False)


def render_region(
    data: RegionPlotData,
    output_path: Union[str, Path],
    config: Optional[Any] = None,
    figsize: Tuple[float, float] = (10, 8)
) -> Path:
    """
    Draw a RegionPlotData and save it as PDF.

    Args:
        data: Output of RegionTracks.build
        output_path: Path to save figure
        config: Optional configuration for style and colors
        figsize: Figure size in inches

    Returns:
        Path of the saved figure
    """
    output_path = Path(output_path)
    logger.info(f"Generating region plot -> {output_path}")

    setup_publication_style(config)
    colors: Dict[str, str] = get_color_palette(config)
    if config is not None and hasattr(config, "viz_params"):
        figsize = tuple(config.viz_params.get("figure_sizes", {}).get("region", figsize))

    chrom, win_start, win_end = data.window
    names = [name for name, _ in data.tracks]
    fig = plt.figure(figsize=figsize)
    grid = GridSpec(len(data.tracks), 1, height_ratios=[h for _, h in data.tracks], hspace=0.15)

    axes = {}
    for i, name in enumerate(names):
        axes[name] = fig.add_subplot(grid[i], sharex=axes.get(names[0]))
        axes[name].axvspan(int(data.region["start"]), int(data.region["end"]),
                           color=colors["region"], alpha=0.15, linewidth=0)

    ax = axes["axis"]
    ax.set_yticks([])
    ax.spines["left"].set_visible(False)
    ax.xaxis.tick_top()
    ax.set_title(f"{chrom}:{win_start:,}-{win_end:,}")

    _draw_intervals(axes["genes"], data.genes, colors["genes"], "Genes", with_names=True)
    _draw_intervals(axes["cpg_islands"], data.cpg_islands, colors["cpg_islands"], "CpG islands")
    _draw_intervals(axes["dnase"], data.dnase, colors["dnase"], "DNase")

    ax = axes["methylation"]
    x = data.positions.to_numpy()
    for sample in data.beta.columns:
        group = data.groups.get(sample, "unknown")
        ax.plot(x, data.beta[sample].to_numpy(), color=group_color(colors, group),
                alpha=0.3, linewidth=0.8, marker="o", markersize=2)
    handles = []
    for group in sorted(data.groups.dropna().unique()):
        members = data.groups.index[data.groups == group]
        ax.plot(x, data.beta[members].mean(axis=1).to_numpy(), color=group_color(colors, group),
                linewidth=2.5)
        handles.append(Line2D([0], [0], color=group_color(colors, group), lw=2.5, label=group))
    ax.set_ylim(0, 1)
    ax.set_ylabel("Beta value")
    ax.set_xlabel(f"Position on {chrom}")
    ax.legend(handles=handles, loc="best", frameon=True, fancybox=False, edgecolor="black")

    for name in names[:-1]:
        if name != "axis":
            plt.setp(axes[name].get_xticklabels(), visible=False)
    axes["methylation"].set_xlim(win_start, win_end)

    save_figure(fig, output_path, config)
    logger.info("  Region plot saved")
    return output_path
