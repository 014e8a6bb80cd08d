"""
Differentially methylated region (DMR) calling.

Per-CpG moderated t-statistics are squared and smoothed along each
chromosome with a Gaussian kernel (bandwidth ``lambda_ / C``, truncated at
``lambda_`` bp). Under the null each squared statistic is roughly chi-square
with one degree of freedom, so the kernel sum is tested against a scaled
chi-square distribution (Satterthwaite approximation). CpGs whose smoothed
FDR passes the cutoff and lie within ``lambda_`` bp of each other form a
region.

The per-CpG statistics come from the differential testing top table; they
are never recomputed here.
"""

import logging
from typing import Any, Optional

import numpy as np
import pandas as pd
from scipy import stats

logger = logging.getLogger(__name__)

REGION_COLUMNS = [
    "chr", "start", "end", "width", "n_cpgs", "min_smoothed_fdr",
    "stouffer", "hmfdr", "max_diff", "mean_diff", "probes",
]


def annotate_cpgs(
    top_table: pd.DataFrame,
    annotation: Optional[pd.DataFrame] = None,
    fdr: float = 0.05
) -> pd.DataFrame:
    """
    Build the per-CpG input of region calling from a differential top table.

    Args:
        top_table: Output of LinearModelFit.top_table (t, logfc, adj_p_value)
        annotation: Probe annotation, used when the table lacks chr/pos
        fdr: Individual significance threshold on adj_p_value

    Returns:
        DataFrame indexed by probe id with chr, pos, stat, diff, ind_fdr,
        is_sig, sorted by chromosome and position
    """
    table = top_table
    if not {"chr", "pos"}.issubset(table.columns):
        if annotation is None:
            raise ValueError("Top table has no chr/pos columns and no annotation was given")
        table = table.join(annotation[["chr", "pos"]], how="left")

    diff_col = "delta_beta" if "delta_beta" in table.columns else "logfc"
    cpgs = pd.DataFrame({
        "chr": table["chr"],
        "pos": pd.to_numeric(table["pos"], errors="coerce"),
        "stat": table["t"],
        "diff": table[diff_col],
        "ind_fdr": table["adj_p_value"],
    })

    located = cpgs["chr"].notna() & cpgs["pos"].notna()
    if not located.all():
        logger.warning(f"Dropping {int((~located).sum())} CpGs without genomic coordinates")
        cpgs = cpgs[located].copy()

    cpgs["pos"] = cpgs["pos"].astype(np.int64)
    cpgs["is_sig"] = cpgs["ind_fdr"] < fdr
    cpgs = cpgs.sort_values(["chr", "pos"], kind="mergesort")

    logger.info(f"Annotated {len(cpgs)} CpGs, {int(cpgs['is_sig'].sum())} individually significant")
    return cpgs


def kernel_smooth(cpgs: pd.DataFrame, lambda_: float = 1000, C: float = 2) -> pd.DataFrame:
    """
    Smooth squared statistics along each chromosome and test them.

    Args:
        cpgs: Output of :func:`annotate_cpgs`
        lambda_: Kernel support and clustering gap in bp
        C: Scaling factor; the kernel standard deviation is lambda_ / C

    Returns:
        Copy of cpgs with raw_p and smoothed_fdr columns
    """
    if lambda_ <= 0 or C <= 0:
        raise ValueError(f"lambda_ and C must be positive, got {lambda_} and {C}")

    sigma = lambda_ / C
    raw_p = pd.Series(np.nan, index=cpgs.index)

    for chrom, group in cpgs.groupby("chr", sort=False):
        group = group.sort_values("pos", kind="mergesort")
        pos = group["pos"].to_numpy(dtype=float)
        y2 = group["stat"].to_numpy(dtype=float) ** 2

        lo = np.searchsorted(pos, pos - lambda_, side="left")
        hi = np.searchsorted(pos, pos + lambda_, side="right")

        p = np.empty(len(pos))
        for i in range(len(pos)):
            kernel = np.exp(-((pos[lo[i]:hi[i]] - pos[i]) ** 2) / (2 * sigma ** 2))
            a = kernel.sum()
            b = (kernel ** 2).sum()
            smoothed = kernel @ y2[lo[i]:hi[i]]
            # smoothed ~ (b / a) * chi2(a^2 / b)
            p[i] = stats.chi2.sf(smoothed * a / b, a * a / b)
        raw_p.loc[group.index] = p

    result = cpgs.copy()
    result["raw_p"] = raw_p
    result["smoothed_fdr"] = stats.false_discovery_control(raw_p.to_numpy(), method="bh")
    return result


def _combine(ind_fdr: np.ndarray) -> tuple:
    clipped = np.clip(ind_fdr, np.finfo(float).tiny, 1 - 1e-15)
    stouffer = stats.norm.sf(stats.norm.isf(clipped).sum() / np.sqrt(len(clipped)))
    hmfdr = len(clipped) / (1.0 / clipped).sum()
    return float(stouffer), float(hmfdr)


def call_regions(
    cpgs: pd.DataFrame,
    lambda_: float = 1000,
    min_cpgs: int = 2,
    pcutoff: Optional[float] = None
) -> pd.DataFrame:
    """
    Group CpGs passing the smoothed cutoff into regions.

    Consecutive passing CpGs on the same chromosome no more than
    ``lambda_`` bp apart belong to the same region.

    Args:
        cpgs: Output of :func:`kernel_smooth`
        lambda_: Largest gap between neighbouring CpGs of one region
        min_cpgs: Smallest number of CpGs per reported region
        pcutoff: Threshold on smoothed_fdr; by default the smoothed FDR at
                 the rank equal to the number of individually significant CpGs

    Returns:
        Regions sorted by Stouffer score, then smallest smoothed FDR
    """
    if pcutoff is None:
        n_sig = int(cpgs["is_sig"].sum())
        if n_sig == 0:
            logger.warning("No individually significant CpGs; no regions called")
            return pd.DataFrame(columns=REGION_COLUMNS)
        pcutoff = float(np.sort(cpgs["smoothed_fdr"].to_numpy())[n_sig - 1])
    logger.info(f"Smoothed FDR cutoff: {pcutoff:.4g}")

    passing = cpgs[cpgs["smoothed_fdr"] <= pcutoff].sort_values(["chr", "pos"], kind="mergesort")

    regions = []
    for chrom, group in passing.groupby("chr", sort=False):
        pos = group["pos"].to_numpy()
        breaks = np.flatnonzero(np.diff(pos) > lambda_) + 1
        for members in np.split(np.arange(len(group)), breaks):
            if len(members) < min_cpgs:
                continue
            cluster = group.iloc[members]
            stouffer, hmfdr = _combine(cluster["ind_fdr"].to_numpy(dtype=float))
            diffs = cluster["diff"].to_numpy(dtype=float)
            regions.append({
                "chr": chrom,
                "start": int(cluster["pos"].min()),
                "end": int(cluster["pos"].max()),
                "width": int(cluster["pos"].max() - cluster["pos"].min() + 1),
                "n_cpgs": len(cluster),
                "min_smoothed_fdr": float(cluster["smoothed_fdr"].min()),
                "stouffer": stouffer,
                "hmfdr": hmfdr,
                "max_diff": float(diffs[np.argmax(np.abs(diffs))]),
                "mean_diff": float(diffs.mean()),
                "probes": ",".join(cluster.index.astype(str)),
            })

    if not regions:
        logger.warning(f"No region reached {min_cpgs} CpGs")
        return pd.DataFrame(columns=REGION_COLUMNS)

    result = pd.DataFrame(regions, columns=REGION_COLUMNS)
    result = result.sort_values(["stouffer", "min_smoothed_fdr"], kind="mergesort")
    logger.info(f"Called {len(result)} regions")
    return result.reset_index(drop=True)


class RegionCaller:
    """
    Call DMRs from a differential testing top table.
    """

    def __init__(self, config: Optional[Any] = None):
        """
        Initialize with the ``dmr_params`` section of a Config.

        Args:
            config: Configuration object (defaults used when None)
        """
        self.params = {"lambda": 1000, "C": 2, "min_cpgs": 2, "fdr": 0.05}
        if config is not None and hasattr(config, "dmr_params"):
            self.params.update(config.dmr_params)
        self.cpgs_: Optional[pd.DataFrame] = None

    def find(
        self,
        top_table: pd.DataFrame,
        annotation: Optional[pd.DataFrame] = None,
        pcutoff: Optional[float] = None
    ) -> pd.DataFrame:
        """
        Annotate, smooth and group CpGs into regions.

        Args:
            top_table: Differential testing results (all probes)
            annotation: Probe annotation when top_table lacks coordinates
            pcutoff: Optional explicit smoothed FDR cutoff

        Returns:
            Region table (see :func:`call_regions`)
        """
        cpgs = annotate_cpgs(top_table, annotation, fdr=self.params["fdr"])
        self.cpgs_ = kernel_smooth(cpgs, lambda_=self.params["lambda"], C=self.params["C"])
        return call_regions(
            self.cpgs_,
            lambda_=self.params["lambda"],
            min_cpgs=self.params["min_cpgs"],
            pcutoff=pcutoff,
        )
