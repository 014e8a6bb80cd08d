"""
TCGA Methylation Array Analysis Pipeline

Probe filtering, M-value conversion, differential methylation, region
calling, region plots and gene set enrichment for Illumina 450K beta
values downloaded from the GDC.
"""

__version__ = "1.0.0"
