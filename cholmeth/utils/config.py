"""
Configuration management for the methylation analysis pipeline.

Supports loading configurations from YAML files for:
- Project (cohort) and array platform selection
- Probe filtering thresholds and external probe lists
- Differential testing and region calling parameters
- Visualization and enrichment settings
"""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

DEFAULT_PROJECT = "TCGA-CHOL"
DEFAULT_PLATFORM = "Illumina Human Methylation 450"


class Config:
    """
    Central configuration class for the methylation analysis pipeline.

    Defaults are defined in code, then overridden section by section by an
    optional YAML file, then completed with per-project defaults.

    Attributes:
        base_dir: Root directory of the project
        data_dir: Directory containing input data
        output_dir: Directory for results and figures
        project: Current project (cohort) configuration
        gdc: GDC API settings
        filter_params: Probe filter settings
        transform_params: Beta to M-value transform settings
        model_params: Differential testing settings
        dmr_params: Region calling settings
        enrichment_params: Gene set enrichment settings
        viz_params: Visualization settings
        files: Reference and checkpoint file locations
    """

    SECTIONS = (
        "gdc",
        "filter_params",
        "transform_params",
        "model_params",
        "dmr_params",
        "enrichment_params",
        "viz_params",
        "files",
    )

    def __init__(
        self,
        config_file: Optional[str] = None,
        project: Optional[str] = None,
        platform: Optional[str] = None,
        base_dir: Optional[Path] = None
    ):
        """
        Initialize configuration.

        Args:
            config_file: Path to YAML config file. If None, uses defaults.
            project: GDC project identifier (e.g., "TCGA-CHOL"); takes
                precedence over the config file
            platform: Array platform name as used by the GDC; takes
                precedence over the config file
            base_dir: Project root; defaults to the repository root
        """
        if base_dir is None:
            base_dir = Path(__file__).parent.parent.parent
        self.base_dir = Path(base_dir)

        # Load base configuration
        self._init_defaults()

        # Override with config file if provided
        if config_file:
            self._load_yaml(config_file)

        # Explicit arguments win over the config file
        if project is not None:
            self.project_name = project
        if platform is not None:
            self.platform = platform

        # Load project-specific config
        self.project = self._get_default_project_config(self.project_name)

    def _init_defaults(self):
        """Initialize default configuration values."""
        self.project_name = DEFAULT_PROJECT
        self.platform = DEFAULT_PLATFORM

        # Directories
        self.data_dir = self.base_dir / "data"
        self.output_dir = self.base_dir / "results"
        self.figures_dir = self.output_dir / "plots"
        self.tables_dir = self.output_dir / "tables"

        self.gdc = {
            "api_url": "https://api.gdc.cancer.gov",
            "data_category": "DNA Methylation",
            "data_type": "Methylation Beta Value",
            "page_size": 100,
            "timeout": 120,
        }

        # Probe filter parameters
        self.filter_params = {
            "maf_threshold": 0.05,
            "sex_chromosomes": ["chrX", "chrY"],
            "snp_maf_columns": ["CpG_maf", "SBE_maf"],
            "unknown_annotation": "include",
            "cross_reactive_url": (
                "https://raw.githubusercontent.com/hamidghaedi/"
                "Methylation_Analysis/master/cross_reactive_probe.chen2013.csv"
            ),
            "cross_reactive_column": "TargetID",
        }

        self.transform_params = {
            "offset": 1e-6,
        }

        # Differential testing parameters
        self.model_params = {
            "group_column": "tissue_type",
            "reference_group": "normal",
            "coef": "tumor",
            "adj_p_threshold": 0.05,
        }

        # Region calling parameters
        self.dmr_params = {
            "lambda": 1000,
            "C": 2,
            "min_cpgs": 2,
            "fdr": 0.05,
        }

        self.enrichment_params = {
            "gene_sets": "data/reference/c5.go.bp.v2023.2.Hs.symbols.gmt",
            "min_set_size": 10,
            "max_set_size": 500,
            "bias_correction": True,
        }

        # Visualization parameters
        self.viz_params = {
            "dpi": 300,
            "format": "pdf",
            "region_index": 0,
            "padding": 0.25,
            "track_heights": {
                "axis": 0.5,
                "genes": 1.0,
                "cpg_islands": 0.5,
                "dnase": 0.5,
                "methylation": 3.0,
            },
            "figure_sizes": {
                "single": (6, 5),
                "wide": (8, 6),
                "tall": (6, 8),
                "region": (10, 8)
            },
            "font_sizes": {
                "title": 12,
                "label": 11,
                "tick": 10,
                "legend": 9
            },
            "colors": {
                "tumor": "#e74c3c",
                "normal": "#3498db",
                "genes": "#34495e",
                "cpg_islands": "#2ecc71",
                "dnase": "#9b59b6",
                "region": "#f1c40f"
            }
        }

        # Reference and checkpoint files, relative to base_dir
        self.files = {
            "annotation": "data/reference/450k_annotation.csv",
            "genes": "data/reference/knownGene_hg19.txt",
            "gene_symbols": "data/reference/kgXref_hg19.txt",
            "cpg_islands": "data/reference/cpgIslandExt.txt",
            "dnase": "data/reference/wgEncodeRegDnaseClusteredV3.txt",
            "raw_dir": "data/raw/gdc",
            "dataset": "data/processed/dataset.pkl",
            "beta_filtered": "data/processed/beta_filtered.csv.gz",
            "m_filtered": "data/processed/m_filtered.csv.gz",
        }

        # Fixed column positions (0-based) of the genome tables; gene names
        # are UCSC transcript ids until relabelled from kgXref
        self.interval_columns = {
            "cpg_islands": {"chr": 1, "start": 2, "end": 3, "name": 4},
            "dnase": {"chr": 1, "start": 2, "end": 3, "name": 4},
            "genes": {"chr": 1, "start": 3, "end": 4, "strand": 2, "name": 0},
        }

    def _load_yaml(self, config_file: str):
        """Load configuration from YAML file."""
        config_path = Path(config_file)
        if not config_path.is_absolute():
            config_path = self.base_dir / config_file

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}
        self._update_from_dict(config_data)

    def _get_default_project_config(self, project: str) -> Dict[str, Any]:
        """Get default configuration for known projects."""
        projects = {
            "TCGA-CHOL": {
                "name": "TCGA-CHOL",
                "description": "Cholangiocarcinoma, tumor vs adjacent normal",
                "genome": "hg19",
                "groups": ["tumor", "normal"],
            },
        }
        return projects.get(
            project, {"name": project, "genome": "hg19", "groups": ["tumor", "normal"]}
        )

    def _update_from_dict(self, config_dict: Dict[str, Any]):
        """Update configuration from dictionary."""
        for section in self.SECTIONS:
            if section in config_dict:
                getattr(self, section).update(config_dict[section])
        if "interval_columns" in config_dict:
            self.interval_columns.update(config_dict["interval_columns"])
        if "project" in config_dict:
            self.project_name = config_dict["project"]
        if "platform" in config_dict:
            self.platform = config_dict["platform"]
        if "output_dir" in config_dict:
            self.set_output_dir(config_dict["output_dir"])

    def set_output_dir(self, output_dir: str):
        """Point all result paths at a new output directory."""
        path = Path(output_dir)
        if not path.is_absolute():
            path = self.base_dir / path
        self.output_dir = path
        self.figures_dir = path / "plots"
        self.tables_dir = path / "tables"

    def get_data_path(self, file_key: str) -> Path:
        """Get full path for a data file."""
        if file_key in self.files:
            path = Path(self.files[file_key])
            return path if path.is_absolute() else self.base_dir / path
        return self.data_dir / file_key

    def get_output_path(self, filename: str, subdir: str = "plots") -> Path:
        """Get output path for results."""
        if subdir == "plots":
            return self.figures_dir / filename
        elif subdir == "tables":
            return self.tables_dir / filename
        return self.output_dir / subdir / filename

    def ensure_output_dirs(self):
        """Create output directories if they don't exist."""
        self.figures_dir.mkdir(parents=True, exist_ok=True)
        self.tables_dir.mkdir(parents=True, exist_ok=True)

    def __repr__(self) -> str:
        return (
            f"Config(project='{self.project_name}', "
            f"platform='{self.platform}', "
            f"base_dir='{self.base_dir}')"
        )


def load_config(
    config_file: Optional[str] = None,
    project: Optional[str] = None,
    platform: Optional[str] = None,
    base_dir: Optional[Path] = None
) -> Config:
    """
    Load configuration for the analysis pipeline.

    Args:
        config_file: Path to custom YAML configuration file
        project: GDC project identifier (default: config file, then TCGA-CHOL)
        platform: Array platform name (default: config file, then 450K)
        base_dir: Optional project root override

    Returns:
        Config object with all settings loaded

    Example:
        >>> config = load_config(project="TCGA-CHOL")
        >>> config.get_data_path("beta_filtered")
        PosixPath('/path/to/data/processed/beta_filtered.csv.gz')
    """
    return Config(
        config_file=config_file, project=project, platform=platform, base_dir=base_dir
    )
