"""
Preprocessing modules for methylation analysis.
"""

from .probe_filter import (
    ProbeFilter,
    autosomal,
    complete_rows,
    not_cross_reactive,
    snp_free,
    unannotated,
)
from .transformers import MValueTransformer, beta_to_m, m_to_beta

__all__ = [
    "MValueTransformer",
    "ProbeFilter",
    "autosomal",
    "beta_to_m",
    "complete_rows",
    "m_to_beta",
    "not_cross_reactive",
    "snp_free",
    "unannotated",
]
