"""
Probe quality filtering for methylation array matrices.

A probe is kept only if it passes every predicate:
- complete: no missing value in any sample
- autosomal: not on a sex chromosome
- snp: no overlapping SNP, or the SNP's MAF is at most the threshold
- cross_reactive: not in the cross-reactive exclusion list

Each predicate is evaluated on the full row set and returns a boolean mask
aligned to the matrix rows; masks are combined with a logical AND, so the
retained set does not depend on the order the predicates are applied in.
"""

import logging
from functools import reduce
from typing import Any, Callable, Dict, Iterable, List, Optional

import pandas as pd

logger = logging.getLogger(__name__)

UNKNOWN_POLICIES = ("include", "exclude")


def _strip_chr(values: Iterable[Any]) -> List[Optional[str]]:
    return [None if pd.isna(v) else str(v).lower().removeprefix("chr") for v in values]


def unannotated(beta: pd.DataFrame, annotation: pd.DataFrame) -> pd.Series:
    """
    True for probes with no known chromosome.

    Covers probes missing from the annotation and annotated probes whose
    chromosome is empty; both follow the unknown_annotation policy.
    """
    return annotation["chr"].reindex(beta.index).isna()


def complete_rows(beta: pd.DataFrame) -> pd.Series:
    """True for probes with a value in every sample."""
    return beta.notna().all(axis=1)


def autosomal(
    beta: pd.DataFrame,
    annotation: pd.DataFrame,
    sex_chromosomes: Iterable[str] = ("chrX", "chrY"),
    unknown: str = "include"
) -> pd.Series:
    """True for probes not annotated to a sex chromosome."""
    excluded = set(_strip_chr(sex_chromosomes))
    chrom = annotation["chr"].reindex(beta.index)
    known = ~unannotated(beta, annotation)
    on_sex = pd.Series(
        [c in excluded for c in _strip_chr(chrom)], index=beta.index
    )
    return (~on_sex & known) | (~known & (unknown == "include"))


def snp_free(
    beta: pd.DataFrame,
    annotation: pd.DataFrame,
    maf_threshold: float = 0.05,
    unknown: str = "include"
) -> pd.Series:
    """True for probes without an overlapping SNP above the MAF threshold."""
    known = ~unannotated(beta, annotation)
    maf = annotation["snp_maf"].reindex(beta.index)
    passes = maf.isna() | (maf <= maf_threshold)
    return (passes & known) | (~known & (unknown == "include"))


def not_cross_reactive(beta: pd.DataFrame, cross_reactive: Iterable[str]) -> pd.Series:
    """True for probes absent from the cross-reactive list."""
    return pd.Series(~beta.index.isin(pd.Index(cross_reactive)), index=beta.index)


class ProbeFilter:
    """
    Remove low-quality probes from a beta matrix.

    The input matrix is never modified; :meth:`filter` and
    :meth:`apply_sequential` return new DataFrames with the input row order.

    Attributes:
        report_: Per-predicate count of failing probes from the last call
        n_unknown_: Probes without a known chromosome in the last call
    """

    PREDICATES = ("complete", "autosomal", "snp", "cross_reactive")

    def __init__(
        self,
        annotation: pd.DataFrame,
        cross_reactive: Iterable[str] = (),
        maf_threshold: float = 0.05,
        sex_chromosomes: Iterable[str] = ("chrX", "chrY"),
        unknown_annotation: str = "include"
    ):
        """
        Initialize probe filter.

        Args:
            annotation: Probe annotation indexed by probe id (chr, snp_maf)
            cross_reactive: Probe ids to exclude
            maf_threshold: Highest tolerated MAF of an overlapping SNP
            sex_chromosomes: Chromosomes to exclude
            unknown_annotation: "include" keeps probes without a known
                chromosome (missing from the annotation or with an empty
                chr) through the chromosome and SNP checks, "exclude" drops them
        """
        if unknown_annotation not in UNKNOWN_POLICIES:
            raise ValueError(
                f"unknown_annotation must be one of {UNKNOWN_POLICIES}, "
                f"got '{unknown_annotation}'"
            )
        self.annotation = annotation
        self.cross_reactive = pd.Index(list(cross_reactive))
        self.maf_threshold = maf_threshold
        self.sex_chromosomes = list(sex_chromosomes)
        self.unknown_annotation = unknown_annotation
        self.report_: Optional[pd.DataFrame] = None
        self.n_unknown_: int = 0

    @classmethod
    def from_config(
        cls,
        config: Any,
        annotation: pd.DataFrame,
        cross_reactive: Iterable[str] = ()
    ) -> "ProbeFilter":
        """Build a filter from the ``filter_params`` section of a Config."""
        params = config.filter_params
        return cls(
            annotation=annotation,
            cross_reactive=cross_reactive,
            maf_threshold=params["maf_threshold"],
            sex_chromosomes=params["sex_chromosomes"],
            unknown_annotation=params["unknown_annotation"],
        )

    def _predicates(self) -> Dict[str, Callable[[pd.DataFrame], pd.Series]]:
        return {
            "complete": complete_rows,
            "autosomal": lambda b: autosomal(
                b, self.annotation, self.sex_chromosomes, self.unknown_annotation
            ),
            "snp": lambda b: snp_free(
                b, self.annotation, self.maf_threshold, self.unknown_annotation
            ),
            "cross_reactive": lambda b: not_cross_reactive(b, self.cross_reactive),
        }

    def _check_unknown(self, beta: pd.DataFrame) -> None:
        unknown = beta.index[unannotated(beta, self.annotation).to_numpy()]
        self.n_unknown_ = len(unknown)
        if self.n_unknown_:
            action = "kept through" if self.unknown_annotation == "include" else "dropped by"
            logger.warning(
                f"{self.n_unknown_} probes have no chromosome annotation (e.g. {unknown[0]}) "
                f"and are {action} the chromosome and SNP checks"
            )

    def masks(self, beta: pd.DataFrame) -> pd.DataFrame:
        """Evaluate every predicate independently on the full row set."""
        if beta.index.has_duplicates:
            raise ValueError(
                f"Duplicated probe identifier: {beta.index[beta.index.duplicated()][0]}"
            )
        self._check_unknown(beta)
        return pd.DataFrame(
            {name: predicate(beta) for name, predicate in self._predicates().items()}
        )

    def filter(self, beta: pd.DataFrame) -> pd.DataFrame:
        """
        Keep the probes that pass all predicates.

        Args:
            beta: Beta matrix, probes as rows

        Returns:
            New DataFrame with the retained probes in input order
        """
        masks = self.masks(beta)
        keep = reduce(lambda a, b: a & b, (masks[c] for c in masks.columns))

        self.report_ = pd.DataFrame({
            "predicate": masks.columns,
            "n_failed": [int((~masks[c]).sum()) for c in masks.columns],
        })
        for predicate, n_failed in zip(self.report_["predicate"], self.report_["n_failed"]):
            logger.info(f"  {predicate}: {n_failed} probes fail")

        filtered = beta.loc[keep.to_numpy()].copy()
        logger.info(
            f"Probe filter kept {filtered.shape[0]} of {beta.shape[0]} probes "
            f"({beta.shape[0] - filtered.shape[0]} removed)"
        )
        return filtered

    def apply_sequential(
        self,
        beta: pd.DataFrame,
        order: Optional[Iterable[str]] = None
    ) -> pd.DataFrame:
        """
        Apply the predicates one after another in the given order.

        Each step returns a new DataFrame; the result equals :meth:`filter`
        for any order.

        Args:
            beta: Beta matrix, probes as rows
            order: Predicate names (default: PREDICATES)

        Returns:
            New DataFrame with the retained probes in input order
        """
        order = list(self.PREDICATES if order is None else order)
        unknown = [name for name in order if name not in self.PREDICATES]
        if unknown:
            raise KeyError(f"Unknown probe filter predicate: {unknown[0]}")

        predicates = self._predicates()
        self._check_unknown(beta)
        current = beta
        for name in order:
            mask = predicates[name](current)
            current = current.loc[mask.to_numpy()].copy()
            logger.debug(f"  after {name}: {current.shape[0]} probes")
        return current
