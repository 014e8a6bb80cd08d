"""
Visualization modules for methylation analysis.
"""

from .plots import PlotGenerator
from .style import get_color_palette, group_color, save_figure, setup_publication_style
from .tracks import RegionPlotData, RegionTracks, display_window, render_region

__all__ = [
    "PlotGenerator",
    "RegionPlotData",
    "RegionTracks",
    "display_window",
    "get_color_palette",
    "group_color",
    "render_region",
    "save_figure",
    "setup_publication_style",
]
