"""
Methylation matrix loader: extraction from datasets and on-disk checkpoints.
"""

import logging
from pathlib import Path
from typing import List, Optional, Tuple, Union

import pandas as pd

from .base import DataLoader
from .dataset import MethylationDataset

logger = logging.getLogger(__name__)


class MethylationDataLoader(DataLoader):
    """
    Load, extract and checkpoint methylation matrices.

    Matrices are kept with probes as rows and samples as columns. Three
    artifacts can be written to disk so a run can resume without repeating
    acquisition and filtering:
    - the prepared dataset object (pickle)
    - the filtered beta matrix (CSV)
    - the filtered M-value matrix (CSV)
    """

    def load(
        self,
        file_path: Union[str, Path],
        sample_filter: Optional[List[str]] = None,
        probe_filter: Optional[List[str]] = None,
        **kwargs
    ) -> pd.DataFrame:
        """
        Load a probes x samples matrix from CSV.

        Args:
            file_path: Path to matrix CSV (gzip if the name ends in .gz)
            sample_filter: Optional list of sample IDs to keep
            probe_filter: Optional list of probe IDs to keep

        Returns:
            DataFrame with probes as rows and samples as columns
        """
        def read(path: Path) -> pd.DataFrame:
            logger.info(f"Loading methylation matrix from {path.name}...")
            df = pd.read_csv(path, index_col=0)
            df.index.name = "probe_id"
            df.columns.name = "sample_id"
            return df

        df = self._cached(self._resolve_path(file_path), read)

        if probe_filter is not None:
            available_probes = [p for p in probe_filter if p in df.index]
            df = df.loc[available_probes]
            logger.info(f"Filtered to {len(available_probes)} probes")

        if sample_filter is not None:
            available_samples = [s for s in sample_filter if s in df.columns]
            df = df[available_samples]
            logger.info(f"Filtered to {len(available_samples)} samples")

        logger.info(f"Loaded {df.shape[0]} probes x {df.shape[1]} samples")
        return df

    def extract(self, dataset: MethylationDataset) -> Tuple[pd.DataFrame, pd.DataFrame]:
        """
        Pull the beta matrix and the matching sample table out of a dataset.

        The sample table is reordered to the matrix columns by sample id.

        Args:
            dataset: Prepared dataset

        Returns:
            Tuple of (beta, samples)
        """
        beta = dataset.beta
        missing = [s for s in beta.columns if s not in dataset.samples.index]
        if missing:
            raise KeyError(f"No sample metadata for sample {missing[0]}")

        samples = dataset.samples.loc[beta.columns]
        logger.info(f"Extracted beta matrix: {beta.shape[0]} probes x {beta.shape[1]} samples")
        return beta, samples

    def save_matrix(self, df: pd.DataFrame, file_path: Union[str, Path]) -> Path:
        """Write a probes x samples matrix to CSV."""
        path = self._resolve_path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(path)
        self._invalidate(path)
        logger.info(f"Saved {df.shape[0]} x {df.shape[1]} matrix to {path}")
        return path

    def load_matrix(self, file_path: Union[str, Path]) -> pd.DataFrame:
        """Reload a matrix written by :meth:`save_matrix`."""
        return self.load(file_path)

    def save_dataset(self, dataset: MethylationDataset, file_path: Union[str, Path]) -> Path:
        """Serialize the prepared dataset object."""
        path = self._resolve_path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        pd.to_pickle(dataset, path)
        logger.info(f"Saved {dataset} to {path}")
        return path

    def load_dataset(self, file_path: Union[str, Path]) -> MethylationDataset:
        """Reload a dataset written by :meth:`save_dataset`."""
        path = self._resolve_path(file_path)
        self._validate_file(path)
        dataset = pd.read_pickle(path)
        if not isinstance(dataset, MethylationDataset):
            raise ValueError(f"{path} does not hold a MethylationDataset")
        logger.info(f"Loaded {dataset} from {path.name}")
        return dataset

    def has_checkpoint(self) -> bool:
        """True when both filtered matrices exist on disk."""
        return all(
            self.config.get_data_path(key).exists()
            for key in ("beta_filtered", "m_filtered")
        )
