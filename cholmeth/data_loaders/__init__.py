"""
Data loading modules for methylation analysis.

This module provides loaders that handle:
- Acquisition of TCGA beta-value data from the GDC
- Beta / M-value matrices and on-disk checkpoints
- Sample metadata derived from TCGA barcodes
- Probe annotation and genome reference tables
"""

from .annotation import AnnotationLoader, label_genes, probe_genes
from .base import DataLoader
from .dataset import MethylationDataset
from .gdc import GDCDownloader
from .metadata import MetadataLoader, tissue_from_barcode
from .methylation import MethylationDataLoader

__all__ = [
    "AnnotationLoader",
    "DataLoader",
    "GDCDownloader",
    "MetadataLoader",
    "MethylationDataLoader",
    "MethylationDataset",
    "label_genes",
    "probe_genes",
    "tissue_from_barcode",
]
