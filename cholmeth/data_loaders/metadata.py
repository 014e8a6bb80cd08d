"""
Metadata loader for sample annotations.
"""

import logging
from pathlib import Path
from typing import List, Optional, Union

import pandas as pd

from .base import DataLoader

logger = logging.getLogger(__name__)


def tissue_from_barcode(barcode: str) -> str:
    """
    Derive the tissue group from a TCGA sample barcode.

    The two digits after the third dash encode the sample type:
    01-09 are tumors, 10-19 are normals, 20-29 are controls.

    Args:
        barcode: Sample barcode, e.g. "TCGA-3X-AAV9-01A"

    Returns:
        "tumor", "normal" or "control"
    """
    parts = barcode.split("-")
    if len(parts) < 4 or len(parts[3]) < 2 or not parts[3][:2].isdigit():
        raise ValueError(f"Not a TCGA sample barcode: {barcode}")

    code = int(parts[3][:2])
    if code < 10:
        return "tumor"
    if code < 20:
        return "normal"
    return "control"


class MetadataLoader(DataLoader):
    """
    Load and process sample metadata.

    Handles:
    - Tissue group derivation from TCGA barcodes
    - Tissue filtering
    - Group labels aligned to matrix columns
    """

    def load(
        self,
        file_path: Union[str, Path],
        sample_col: str = "sample_id",
        **kwargs
    ) -> pd.DataFrame:
        """
        Load metadata from CSV file.

        Args:
            file_path: Path to metadata CSV
            sample_col: Column holding sample identifiers (becomes the index)

        Returns:
            DataFrame indexed by sample id, with a "tissue_type" column
        """
        path = self._resolve_path(file_path)
        self._validate_file(path)

        logger.info(f"Loading metadata from {path.name}...")
        df = pd.read_csv(path).set_index(sample_col)

        if "tissue_type" not in df.columns:
            df["tissue_type"] = [tissue_from_barcode(s) for s in df.index]

        logger.info(f"Loaded metadata for {len(df)} samples")
        return df

    def from_barcodes(self, barcodes: List[str]) -> pd.DataFrame:
        """Build a minimal metadata table from sample barcodes."""
        df = pd.DataFrame(index=pd.Index(barcodes, name="sample_id"))
        df["case_id"] = ["-".join(b.split("-")[:3]) for b in barcodes]
        df["tissue_type"] = [tissue_from_barcode(b) for b in barcodes]
        return df

    def filter_by_tissue(
        self,
        df: pd.DataFrame,
        tissue: Union[str, List[str]],
        tissue_col: str = "tissue_type"
    ) -> pd.DataFrame:
        """
        Filter metadata by tissue type.

        Args:
            df: Metadata DataFrame
            tissue: Tissue type(s) to keep
            tissue_col: Name of tissue column

        Returns:
            Filtered DataFrame
        """
        if isinstance(tissue, str):
            tissue = [tissue]

        # Handle case-insensitive matching
        df_tissue_lower = df[tissue_col].str.lower().str.strip()
        tissue_lower = [t.lower().strip() for t in tissue]

        mask = df_tissue_lower.isin(tissue_lower)
        filtered = df[mask].copy()

        logger.info(f"Filtered to {len(filtered)} samples for tissue(s): {tissue}")
        return filtered

    def group_labels(
        self,
        samples: pd.DataFrame,
        sample_ids: Optional[List[str]] = None,
        column: str = "tissue_type"
    ) -> pd.Series:
        """
        Get the group label of each sample, in the requested order.

        Args:
            samples: Metadata DataFrame indexed by sample id
            sample_ids: Order to return labels in (e.g. matrix columns)
            column: Grouping column

        Returns:
            Series of labels indexed by sample id
        """
        if column not in samples.columns:
            raise KeyError(f"Sample metadata has no column '{column}'")

        if sample_ids is None:
            return samples[column].copy()

        missing = [s for s in sample_ids if s not in samples.index]
        if missing:
            raise KeyError(f"No sample metadata for sample {missing[0]}")
        return samples.loc[list(sample_ids), column]

    def select_groups(
        self,
        samples: pd.DataFrame,
        sample_ids: List[str],
        groups: List[str],
        column: str = "tissue_type"
    ) -> pd.DataFrame:
        """
        Keep the samples that belong to one of the compared groups.

        Every id in ``sample_ids`` must have metadata; samples of other groups
        (e.g. controls) are dropped. Labels are matched case-insensitively and
        returned spelled as in ``groups``.

        Returns:
            Metadata of the kept samples, in ``sample_ids`` order
        """
        labels = self.group_labels(samples, sample_ids, column)
        kept = self.filter_by_tissue(samples.loc[labels.index], groups, tissue_col=column)
        spelling = {g.lower().strip(): g for g in groups}
        kept[column] = kept[column].str.lower().str.strip().map(spelling)
        n_dropped = len(labels) - len(kept)
        if n_dropped:
            logger.info(f"Dropped {n_dropped} samples outside groups {groups}")
        return kept

    def summarize(self, samples: pd.DataFrame, column: str = "tissue_type") -> pd.Series:
        """Count samples per group."""
        counts = samples[column].value_counts()
        for group, n in counts.items():
            logger.info(f"  {group}: {n} samples")
        return counts
