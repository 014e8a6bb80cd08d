"""
Gene set over-representation analysis for significant CpG probes.

Genes covered by many probes are more likely to contain a significant
probe by chance. The probability that a gene is significant is modelled
as a monotone function of its probe count (isotonic regression), and
each gene set is tested with Wallenius' non-central hypergeometric
distribution using the ratio of mean weights inside and outside the set
as the odds.
"""

import logging
from typing import Any, Dict, Iterable, Optional, Set

import numpy as np
import pandas as pd
from scipy import stats
from sklearn.isotonic import IsotonicRegression

logger = logging.getLogger(__name__)

RESULT_COLUMNS = ["term", "n_genes", "n_sig", "expected", "p_value", "fdr", "genes"]


def significant_probes(top_table: pd.DataFrame, threshold: float = 0.05) -> pd.Index:
    """Probe ids with adjusted p-value below the threshold."""
    return top_table.index[top_table["adj_p_value"] < threshold]


def probe_weighting(probes_per_gene: pd.Series, sig_genes: Iterable[str]) -> pd.Series:
    """
    Probability-weighting function: P(gene significant | number of probes).

    Args:
        probes_per_gene: Number of universe probes annotated to each gene
        sig_genes: Genes with at least one significant probe

    Returns:
        Fitted probability per gene, non-decreasing in probe count
    """
    sig = probes_per_gene.index.isin(pd.Index(list(sig_genes))).astype(float)
    counts = probes_per_gene.to_numpy(dtype=float)

    model = IsotonicRegression(increasing=True, out_of_bounds="clip")
    fitted = model.fit_transform(counts, sig)

    # Zero weights would make the odds undefined
    positive = fitted[fitted > 0]
    floor = positive.min() / 2 if positive.size else 1.0
    return pd.Series(np.maximum(fitted, floor), index=probes_per_gene.index)


class GeneSetEnrichment:
    """
    Test gene sets for over-representation among genes of significant probes.
    """

    def __init__(self, config: Optional[Any] = None):
        """
        Initialize with the ``enrichment_params`` section of a Config.

        Args:
            config: Configuration object (defaults used when None)
        """
        self.params = {"min_set_size": 10, "max_set_size": 500, "bias_correction": True}
        if config is not None and hasattr(config, "enrichment_params"):
            self.params.update(config.enrichment_params)
        self.weights_: Optional[pd.Series] = None
        self.bias_: Optional[pd.DataFrame] = None

    def run(
        self,
        sig_probes: Iterable[str],
        all_probes: Iterable[str],
        probe_genes: pd.DataFrame,
        gene_sets: Dict[str, Set[str]]
    ) -> pd.DataFrame:
        """
        Run the enrichment test for every gene set.

        Args:
            sig_probes: Significant probe ids
            all_probes: Background probe universe (all tested probes)
            probe_genes: (probe_id, gene) pairs
            gene_sets: Mapping of set name to member genes

        Returns:
            DataFrame with term, n_genes, n_sig, expected, p_value, fdr,
            genes (significant members), sorted by p_value
        """
        universe_probes = pd.Index(list(all_probes))
        sig_probes = pd.Index(list(sig_probes))
        outside = sig_probes.difference(universe_probes)
        if len(outside):
            raise ValueError(f"Significant probe {outside[0]} is not in the probe universe")

        pairs = probe_genes[probe_genes["probe_id"].isin(universe_probes)]
        probes_per_gene = pairs.groupby("gene")["probe_id"].nunique()
        genes = probes_per_gene.index
        sig_genes = set(pairs.loc[pairs["probe_id"].isin(sig_probes), "gene"])

        logger.info(
            f"Enrichment: {len(sig_probes)} significant probes -> {len(sig_genes)} genes, "
            f"universe {len(universe_probes)} probes -> {len(genes)} genes"
        )

        if self.params["bias_correction"]:
            self.weights_ = probe_weighting(probes_per_gene, sig_genes)
        else:
            self.weights_ = pd.Series(1.0, index=genes)
        self.bias_ = pd.DataFrame({
            "n_probes": probes_per_gene,
            "significant": genes.isin(list(sig_genes)),
            "weight": self.weights_,
        })

        n_universe = len(genes)
        n_drawn = len(sig_genes)
        gene_set_index = set(genes)
        total_weight = self.weights_.sum()

        rows = []
        for term, members in gene_sets.items():
            in_set = members & gene_set_index
            m = len(in_set)
            if m < self.params["min_set_size"] or m > self.params["max_set_size"]:
                continue

            hits = sorted(in_set & sig_genes)
            k = len(hits)
            if self.params["bias_correction"] and 0 < m < n_universe:
                set_weight = self.weights_.loc[list(in_set)].sum()
                odds = (set_weight / m) / ((total_weight - set_weight) / (n_universe - m))
                dist = stats.nchypergeom_wallenius(n_universe, m, n_drawn, odds)
            else:
                dist = stats.hypergeom(n_universe, m, n_drawn)

            rows.append({
                "term": term,
                "n_genes": m,
                "n_sig": k,
                "expected": float(dist.mean()),
                "p_value": float(dist.sf(k - 1)) if k > 0 else 1.0,
                "genes": ",".join(hits),
            })

        if not rows:
            logger.warning("No gene set within the configured size limits")
            return pd.DataFrame(columns=RESULT_COLUMNS)

        result = pd.DataFrame(rows)
        result["fdr"] = stats.false_discovery_control(result["p_value"].to_numpy(), method="bh")
        result = result[RESULT_COLUMNS].sort_values("p_value", kind="mergesort")

        n_hits = int((result["fdr"] < 0.05).sum())
        logger.info(f"Tested {len(result)} gene sets, {n_hits} at FDR < 0.05")
        return result.reset_index(drop=True)
