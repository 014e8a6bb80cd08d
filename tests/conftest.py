"""Shared fixtures for the pipeline tests."""

import matplotlib

matplotlib.use("Agg")

import numpy as np  # noqa: E402
import pandas as pd  # noqa: E402
import pytest  # noqa: E402

from cholmeth.utils.config import Config  # noqa: E402

TUMORS = ["TCGA-W5-AA2I-01A", "TCGA-W5-AA2Q-01A"]
NORMALS = ["TCGA-W5-AA2I-11A", "TCGA-W5-AA2Q-11A"]


@pytest.fixture
def config(tmp_path):
    return Config(base_dir=tmp_path)


@pytest.fixture
def toy_beta():
    """5 probes x 4 samples: one incomplete, one on chrX, one cross-reactive."""
    return pd.DataFrame(
        [
            [0.10, np.nan, 0.12, 0.11],  # cg01 missing value
            [0.50, 0.52, 0.49, 0.51],    # cg02 chrX
            [0.80, 0.82, 0.20, 0.22],    # cg03 cross-reactive
            [0.90, 0.88, 0.30, 0.31],    # cg04 clean
            [0.05, 0.07, 0.60, 0.62],    # cg05 clean
        ],
        index=pd.Index(["cg01", "cg02", "cg03", "cg04", "cg05"], name="probe_id"),
        columns=pd.Index(TUMORS + NORMALS, name="sample_id"),
    )


@pytest.fixture
def toy_annotation():
    return pd.DataFrame(
        {
            "chr": ["chr1", "chrX", "chr2", "chr3", "chr3"],
            "pos": [1000, 2000, 3000, 4000, 4500],
            "strand": ["+", "-", "+", "+", "-"],
            "snp_maf": [np.nan, np.nan, 0.01, np.nan, 0.05],
            "gene": ["GENE1", "GENE2", "", "GENE4;GENE4B", "GENE5"],
        },
        index=pd.Index(["cg01", "cg02", "cg03", "cg04", "cg05"], name="probe_id"),
    )


@pytest.fixture
def toy_samples():
    return pd.DataFrame(
        {"tissue_type": ["tumor", "tumor", "normal", "normal"]},
        index=pd.Index(TUMORS + NORMALS, name="sample_id"),
    )


@pytest.fixture
def shifted_m():
    """
    200 probes x 10 samples of M-values; the first 10 probes are 3 units
    higher in the 5 tumor samples.
    """
    rng = np.random.default_rng(7)
    n_probes, shifted = 200, 10
    tumors = [f"TCGA-AA-{i:04d}-01A" for i in range(5)]
    normals = [f"TCGA-AA-{i:04d}-11A" for i in range(5)]

    values = rng.normal(0.0, 0.5, size=(n_probes, 10))
    values[:shifted, :5] += 3.0

    m_values = pd.DataFrame(
        values,
        index=pd.Index([f"cg{i:08d}" for i in range(n_probes)], name="probe_id"),
        columns=pd.Index(tumors + normals, name="sample_id"),
    )
    samples = pd.DataFrame(
        {"tissue_type": ["tumor"] * 5 + ["normal"] * 5},
        index=pd.Index(tumors + normals, name="sample_id"),
    )
    return m_values, samples, list(m_values.index[:shifted])
