"""
Statistical models for differential methylation.
"""

from .enrichment import GeneSetEnrichment, probe_weighting, significant_probes
from .linear_model import (
    DifferentialMethylation,
    LinearModelFit,
    delta_beta,
    design_matrix,
)
from .regions import RegionCaller, annotate_cpgs, call_regions, kernel_smooth

__all__ = [
    "DifferentialMethylation",
    "GeneSetEnrichment",
    "LinearModelFit",
    "RegionCaller",
    "annotate_cpgs",
    "call_regions",
    "delta_beta",
    "design_matrix",
    "kernel_smooth",
    "probe_weighting",
    "significant_probes",
]
