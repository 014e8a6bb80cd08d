"""
Tests for gene set over-representation with probe-count bias correction.
"""

import numpy as np
import pandas as pd
import pytest

from cholmeth.models.enrichment import (
    RESULT_COLUMNS,
    GeneSetEnrichment,
    probe_weighting,
    significant_probes,
)

GENES = [f"G{i}" for i in range(100)]
SIG_GENES = GENES[:10] + ["G50"]

GENE_SETS = {
    "SET_A": set(GENES[:20]),
    "SET_B": set(GENES[60:80]),
    "SET_SMALL": {"G0", "G1", "G2"},
    "SET_FOREIGN": {f"X{i}" for i in range(30)},
}


@pytest.fixture
def pairs():
    """One probe per gene, p0..p99."""
    return pd.DataFrame({"probe_id": [f"p{i}" for i in range(100)], "gene": GENES})


@pytest.fixture
def enrichment(config):
    config.enrichment_params["min_set_size"] = 5
    return GeneSetEnrichment(config)


def _sig_probes():
    return [f"p{GENES.index(g)}" for g in SIG_GENES]


@pytest.mark.parametrize("bias_correction", [True, False])
def test_enriched_set_ranks_first(enrichment, pairs, bias_correction):
    enrichment.params["bias_correction"] = bias_correction
    all_probes = pairs["probe_id"]

    result = enrichment.run(_sig_probes(), all_probes, pairs, GENE_SETS)

    assert list(result.columns) == RESULT_COLUMNS
    assert result.iloc[0]["term"] == "SET_A"
    assert result.iloc[0]["n_sig"] == 10
    assert result.iloc[0]["p_value"] < 0.01
    assert result.iloc[0]["expected"] == pytest.approx(20 * 11 / 100, rel=1e-3)

    set_b = result.set_index("term").loc["SET_B"]
    assert set_b["n_sig"] == 0
    assert set_b["p_value"] > 0.05


def test_size_limits_skip_sets(enrichment, pairs):
    result = enrichment.run(_sig_probes(), pairs["probe_id"], pairs, GENE_SETS)
    assert set(result["term"]) == {"SET_A", "SET_B"}


def test_significant_genes_listed(enrichment, pairs):
    result = enrichment.run(_sig_probes(), pairs["probe_id"], pairs, GENE_SETS)
    genes = result.set_index("term").loc["SET_A", "genes"].split(",")
    assert sorted(genes) == sorted(GENES[:10])


def test_fdr_not_below_p_value(enrichment, pairs):
    result = enrichment.run(_sig_probes(), pairs["probe_id"], pairs, GENE_SETS)
    assert (result["fdr"] >= result["p_value"] - 1e-15).all()
    assert result["p_value"].is_monotonic_increasing


def test_significant_probe_outside_universe(enrichment, pairs):
    with pytest.raises(ValueError, match="p_missing"):
        enrichment.run(_sig_probes() + ["p_missing"], pairs["probe_id"], pairs, GENE_SETS)


def test_no_testable_set_gives_empty_table(enrichment, pairs):
    result = enrichment.run(_sig_probes(), pairs["probe_id"], pairs, {"TINY": {"G0"}})
    assert result.empty
    assert list(result.columns) == RESULT_COLUMNS


def test_probe_weighting_is_monotone():
    counts = pd.Series([1, 1, 2, 3, 5, 8, 13, 20], index=[f"G{i}" for i in range(8)])
    weights = probe_weighting(counts, ["G3", "G5", "G6", "G7"])

    ordered = weights.loc[counts.sort_values(kind="mergesort").index].to_numpy()
    assert np.all(np.diff(ordered) >= 0)
    assert (weights > 0).all()
    assert weights["G7"] == pytest.approx(1.0)


def test_bias_table_recorded(enrichment):
    pairs = pd.DataFrame({
        "probe_id": ["p0", "p1", "p2", "p3", "p4"],
        "gene": ["GA", "GA", "GA", "GB", "GC"],
    })
    enrichment.params["min_set_size"] = 1
    enrichment.run(["p0"], pairs["probe_id"], pairs, {"S": {"GA", "GB"}})

    bias = enrichment.bias_
    assert bias.loc["GA", "n_probes"] == 3
    assert bool(bias.loc["GA", "significant"])
    assert not bool(bias.loc["GB", "significant"])


def test_significant_probes_threshold():
    table = pd.DataFrame(
        {"adj_p_value": [0.001, 0.04, 0.05, 0.2]}, index=["a", "b", "c", "d"]
    )
    assert list(significant_probes(table, 0.05)) == ["a", "b"]
