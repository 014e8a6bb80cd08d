"""
Publication-ready plotting style, colors and figure output.
"""

from pathlib import Path
from typing import Any, Dict, Optional, Union

import matplotlib.pyplot as plt

FALLBACK_COLOR = "#333333"


def _viz_params(config: Optional[Any]) -> Dict[str, Any]:
    params = {
        "dpi": 300,
        "format": "pdf",
        "font_sizes": {
            "title": 12,
            "label": 11,
            "tick": 10,
            "legend": 9
        }
    }
    if config is not None and hasattr(config, "viz_params"):
        params.update(config.viz_params)
    return params


def setup_publication_style(config: Optional[Any] = None) -> None:
    """
    Configure matplotlib for publication-quality figures.

    Args:
        config: Optional configuration object with viz_params
    """
    params = _viz_params(config)
    fonts = params["font_sizes"]

    plt.rcParams.update({
        "font.family": "sans-serif",
        "font.sans-serif": ["Arial", "Helvetica", "DejaVu Sans"],
        "font.size": fonts["tick"],
        "axes.titlesize": fonts["title"],
        "axes.labelsize": fonts["label"],
        "xtick.labelsize": fonts["tick"],
        "ytick.labelsize": fonts["tick"],
        "legend.fontsize": fonts["legend"],
        "figure.dpi": params["dpi"],
        "savefig.dpi": params["dpi"],
        "savefig.bbox": "tight",
        "savefig.pad_inches": 0.1,
        "axes.linewidth": 1.0,
        "axes.spines.top": False,
        "axes.spines.right": False,
        "pdf.fonttype": 42,
        "ps.fonttype": 42,
    })


def get_color_palette(config: Optional[Any] = None) -> Dict[str, str]:
    """
    Colors for sample groups and genome annotation tracks.

    Args:
        config: Optional configuration object

    Returns:
        Dictionary mapping category names to hex colors
    """
    colors = {
        "tumor": "#e74c3c",
        "normal": "#3498db",
        "control": "#95a5a6",
        "genes": "#34495e",
        "cpg_islands": "#2ecc71",
        "dnase": "#9b59b6",
        "region": "#f1c40f",
    }
    if config is not None and hasattr(config, "viz_params"):
        colors.update(config.viz_params.get("colors", {}))
    return colors


def group_color(colors: Dict[str, str], group: Any) -> str:
    """Color of a sample group; unlabeled or unknown groups are drawn grey."""
    return colors.get(group, FALLBACK_COLOR)


def save_figure(fig, output_path: Union[str, Path], config: Optional[Any] = None) -> Path:
    """
    Save a figure with the configured format and resolution, then close it.

    The parent directory is created when missing.

    Returns:
        Path of the saved figure
    """
    params = _viz_params(config)
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, format=params["format"], dpi=params["dpi"])
    plt.close(fig)
    return output_path
