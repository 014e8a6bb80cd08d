"""
Container for an acquired methylation array dataset.
"""

from dataclasses import dataclass, field
from typing import Any, Dict

import numpy as np
import pandas as pd


@dataclass
class MethylationDataset:
    """
    Beta-value matrix plus per-sample metadata for one cohort.

    Attributes:
        beta: Beta values, probes as rows and sample ids as columns
        samples: Sample metadata indexed by sample id
        project: Project (cohort) identifier
        platform: Array platform name
        info: Free-form provenance (query, file counts)
    """

    beta: pd.DataFrame
    samples: pd.DataFrame
    project: str = ""
    platform: str = ""
    info: Dict[str, Any] = field(default_factory=dict)

    @property
    def n_probes(self) -> int:
        return self.beta.shape[0]

    @property
    def n_samples(self) -> int:
        return self.beta.shape[1]

    def validate(self) -> "MethylationDataset":
        """
        Check the matrix and metadata invariants.

        Raises:
            ValueError: duplicated identifiers or beta values outside [0, 1]
            KeyError: a matrix column has no metadata row
        """
        dup_probes = self.beta.index[self.beta.index.duplicated()]
        if len(dup_probes):
            raise ValueError(f"Duplicated probe identifier: {dup_probes[0]}")

        dup_samples = self.beta.columns[self.beta.columns.duplicated()]
        if len(dup_samples):
            raise ValueError(f"Duplicated sample identifier: {dup_samples[0]}")

        values = self.beta.to_numpy(dtype=float)
        bad = (values < 0) | (values > 1)
        if bad.any():
            row, col = np.argwhere(bad)[0]
            raise ValueError(
                f"Beta value out of [0, 1] for probe {self.beta.index[row]}, "
                f"sample {self.beta.columns[col]}: {values[row, col]}"
            )

        missing = self.beta.columns.difference(self.samples.index)
        if len(missing):
            raise KeyError(f"No sample metadata for sample {missing[0]}")

        return self

    def __repr__(self) -> str:
        return (
            f"MethylationDataset(project='{self.project}', "
            f"probes={self.n_probes}, samples={self.n_samples})"
        )
