"""
Per-probe linear models with empirical Bayes variance moderation.

Fits one ordinary least squares model per probe against a shared design
matrix, then shrinks the residual variances towards a common prior
estimated from all probes (scaled inverse chi-square prior, fitted by the
method of moments on the log scale). The moderated t-statistics have
``df_residual + df_prior`` degrees of freedom.
"""

import logging
from typing import Any, Optional, Tuple

import numpy as np
import pandas as pd
from scipy import stats
from scipy.special import digamma, polygamma

logger = logging.getLogger(__name__)


def design_matrix(groups: pd.Series, reference: str) -> pd.DataFrame:
    """
    Build a treatment-coded design matrix.

    One intercept column plus one indicator column per non-reference level.

    Args:
        groups: Group label per sample, indexed by sample id
        reference: Level absorbed into the intercept

    Returns:
        DataFrame indexed by sample id; columns "intercept" and the
        non-reference levels in sorted order
    """
    levels = sorted(pd.unique(groups.dropna()))
    if groups.isna().any():
        raise ValueError(f"Sample {groups[groups.isna()].index[0]} has no group label")
    if reference not in levels:
        raise ValueError(f"Reference group '{reference}' not found among {levels}")
    if len(levels) < 2:
        raise ValueError(f"Need at least two groups, found {levels}")

    design = pd.DataFrame({"intercept": 1.0}, index=groups.index)
    for level in levels:
        if level != reference:
            design[level] = (groups == level).astype(float)
    return design


def trigamma_inverse(x: float) -> float:
    """Solve trigamma(y) = x for y by Newton iteration."""
    if x > 1e7:
        return 1.0 / np.sqrt(x)
    if x < 1e-6:
        return 1.0 / x

    y = 0.5 + 1.0 / x
    for _ in range(50):
        tri = polygamma(1, y)
        dif = tri * (1 - tri / x) / polygamma(2, y)
        y += dif
        if -dif / y < 1e-8:
            break
    else:
        logger.warning("trigamma_inverse: iteration limit exceeded")
    return float(y)


def fit_f_dist(s2: np.ndarray, df: float) -> Tuple[float, float]:
    """
    Estimate the prior degrees of freedom and scale of sample variances.

    Args:
        s2: Residual variances, one per probe
        df: Residual degrees of freedom shared by all probes

    Returns:
        Tuple of (df_prior, s2_prior); df_prior is inf when the variances
        show no more spread than expected by chance
    """
    s2 = np.asarray(s2, dtype=float)
    s2 = s2[np.isfinite(s2)]
    if s2.size < 2:
        return 0.0, float(np.mean(s2)) if s2.size else np.nan

    s2 = np.maximum(s2, 0)
    median = np.median(s2)
    if median == 0:
        logger.warning("More than half of residual variances are exactly zero")
        median = 1.0
    s2 = np.maximum(s2, 1e-5 * median)

    z = np.log(s2)
    e = z - digamma(df / 2) + np.log(df / 2)
    emean = e.mean()
    evar = ((e - emean) ** 2).sum() / (e.size - 1) - polygamma(1, df / 2)

    if evar > 0:
        df_prior = 2 * trigamma_inverse(evar)
        s2_prior = float(np.exp(emean + digamma(df_prior / 2) - np.log(df_prior / 2)))
    else:
        df_prior = np.inf
        s2_prior = float(np.exp(emean))
    return float(df_prior), s2_prior


class LinearModelFit:
    """
    Probe-wise linear model fit.

    Attributes:
        coefficients_: Estimated coefficients (probes x design columns)
        stdev_unscaled_: Unscaled standard errors (probes x design columns)
        sigma2_: Residual variance per probe
        df_residual_: Residual degrees of freedom
        ave_expr_: Mean M-value per probe
        t_, p_value_: Moderated statistics, set by :meth:`ebayes`
    """

    def __init__(self):
        self.design_: Optional[pd.DataFrame] = None
        self.coefficients_: Optional[pd.DataFrame] = None
        self.stdev_unscaled_: Optional[pd.DataFrame] = None
        self.sigma2_: Optional[pd.Series] = None
        self.df_residual_: Optional[float] = None
        self.ave_expr_: Optional[pd.Series] = None
        self.df_prior_: Optional[float] = None
        self.s2_prior_: Optional[float] = None
        self.s2_post_: Optional[pd.Series] = None
        self.df_total_: Optional[float] = None
        self.t_: Optional[pd.DataFrame] = None
        self.p_value_: Optional[pd.DataFrame] = None

    def fit(self, values: pd.DataFrame, design: pd.DataFrame) -> "LinearModelFit":
        """
        Fit the model to every probe.

        Args:
            values: M-values (or betas), probes as rows, samples as columns
            design: Design matrix indexed by sample id

        Returns:
            Self
        """
        missing = [s for s in values.columns if s not in design.index]
        if missing:
            raise KeyError(f"Sample {missing[0]} is not in the design matrix")

        # Align design rows to matrix columns by sample id
        design = design.loc[values.columns]
        X = design.to_numpy(dtype=float)
        Y = values.to_numpy(dtype=float)

        nan_rows = np.isnan(Y).any(axis=1)
        if nan_rows.any():
            raise ValueError(
                f"Probe {values.index[np.argmax(nan_rows)]} has missing values; "
                "filter incomplete probes before fitting"
            )

        n, p = X.shape
        if np.linalg.matrix_rank(X) < p:
            raise ValueError("Design matrix is not of full rank")
        df_residual = n - p
        if df_residual < 1:
            raise ValueError(f"No residual degrees of freedom ({n} samples, {p} coefficients)")

        xtx_inv = np.linalg.inv(X.T @ X)
        coef = Y @ X @ xtx_inv
        resid = Y - coef @ X.T

        self.design_ = design
        self.coefficients_ = pd.DataFrame(coef, index=values.index, columns=design.columns)
        self.stdev_unscaled_ = pd.DataFrame(
            np.tile(np.sqrt(np.diag(xtx_inv)), (Y.shape[0], 1)),
            index=values.index,
            columns=design.columns,
        )
        self.sigma2_ = pd.Series((resid ** 2).sum(axis=1) / df_residual, index=values.index)
        self.df_residual_ = float(df_residual)
        self.ave_expr_ = pd.Series(Y.mean(axis=1), index=values.index)

        logger.info(
            f"Fitted linear model: {Y.shape[0]} probes, {n} samples, "
            f"{p} coefficients, {df_residual} residual df"
        )
        return self

    def ebayes(self) -> "LinearModelFit":
        """
        Moderate the residual variances and compute moderated t-statistics.

        Returns:
            Self
        """
        if self.coefficients_ is None:
            raise RuntimeError("Model has not been fitted yet")

        df = self.df_residual_
        s2 = self.sigma2_.to_numpy()
        df_prior, s2_prior = fit_f_dist(s2, df)

        if np.isinf(df_prior):
            s2_post = np.full_like(s2, s2_prior)
        else:
            s2_post = (df * s2 + df_prior * s2_prior) / (df + df_prior)

        df_total = min(df + df_prior, df * len(s2))
        t = self.coefficients_.to_numpy() / (
            self.stdev_unscaled_.to_numpy() * np.sqrt(s2_post)[:, None]
        )
        p = 2 * stats.t.sf(np.abs(t), df_total)

        self.df_prior_ = df_prior
        self.s2_prior_ = s2_prior
        self.s2_post_ = pd.Series(s2_post, index=self.sigma2_.index)
        self.df_total_ = df_total
        self.t_ = pd.DataFrame(t, index=self.coefficients_.index, columns=self.coefficients_.columns)
        self.p_value_ = pd.DataFrame(p, index=self.coefficients_.index, columns=self.coefficients_.columns)

        logger.info(f"Empirical Bayes: df_prior={df_prior:.2f}, s2_prior={s2_prior:.4g}")
        return self

    def top_table(
        self,
        coef: str,
        annotation: Optional[pd.DataFrame] = None,
        beta: Optional[pd.DataFrame] = None,
        groups: Optional[pd.Series] = None,
        reference: Optional[str] = None
    ) -> pd.DataFrame:
        """
        Tabulate per-probe results for one coefficient, most significant first.

        Args:
            coef: Design column to report
            annotation: Optional probe annotation, joined by probe id
            beta: Optional beta matrix for a delta-beta column
            groups: Group labels per sample (needed with beta)
            reference: Reference group (needed with beta)

        Returns:
            DataFrame indexed by probe id with logfc, ave_expr, t, p_value,
            adj_p_value (Benjamini-Hochberg) and any extra columns
        """
        if self.t_ is None:
            raise RuntimeError("Moderated statistics missing; call ebayes() first")
        if coef not in self.coefficients_.columns:
            raise KeyError(
                f"Coefficient '{coef}' not in design columns {list(self.coefficients_.columns)}"
            )

        p_values = self.p_value_[coef]
        table = pd.DataFrame({
            "logfc": self.coefficients_[coef],
            "ave_expr": self.ave_expr_,
            "t": self.t_[coef],
            "p_value": p_values,
            "adj_p_value": stats.false_discovery_control(p_values.to_numpy(), method="bh"),
        })
        table.index.name = "probe_id"

        if beta is not None:
            if groups is None or reference is None:
                raise ValueError("groups and reference are required to compute delta_beta")
            table["delta_beta"] = delta_beta(beta, groups, coef, reference).reindex(table.index)

        if annotation is not None:
            unannotated = table.index.difference(annotation.index)
            if len(unannotated):
                logger.warning(f"{len(unannotated)} tested probes have no annotation")
            table = table.join(annotation, how="left")

        return table.sort_values("p_value", kind="mergesort")


def delta_beta(
    beta: pd.DataFrame,
    groups: pd.Series,
    group: str,
    reference: str
) -> pd.Series:
    """Difference of group mean betas (group minus reference) per probe."""
    labels = groups.reindex(beta.columns)
    return (
        beta.loc[:, (labels == group).to_numpy()].mean(axis=1)
        - beta.loc[:, (labels == reference).to_numpy()].mean(axis=1)
    )


class DifferentialMethylation:
    """
    Differential methylation between sample groups.

    Builds the design from sample metadata, fits the moderated linear model
    and keeps the fit so the region caller uses the same statistics.
    """

    def __init__(self, config: Optional[Any] = None):
        """
        Initialize with the ``model_params`` section of a Config.

        Args:
            config: Configuration object (defaults used when None)
        """
        self._params = {
            "group_column": "tissue_type",
            "reference_group": "normal",
            "coef": "tumor",
            "adj_p_threshold": 0.05,
        }
        if config is not None and hasattr(config, "model_params"):
            self._params.update(config.model_params)

        self.design_: Optional[pd.DataFrame] = None
        self.fit_: Optional[LinearModelFit] = None
        self.results_: Optional[pd.DataFrame] = None

    def run(
        self,
        m_values: pd.DataFrame,
        samples: pd.DataFrame,
        annotation: Optional[pd.DataFrame] = None,
        beta: Optional[pd.DataFrame] = None
    ) -> pd.DataFrame:
        """
        Test every probe for a difference between groups.

        Args:
            m_values: M-values, probes as rows
            samples: Sample metadata indexed by sample id
            annotation: Optional probe annotation to join
            beta: Optional beta matrix for delta_beta

        Returns:
            Top table of all probes, most significant first
        """
        group_col = self._params["group_column"]
        reference = self._params["reference_group"]
        coef = self._params["coef"]

        missing = [s for s in m_values.columns if s not in samples.index]
        if missing:
            raise KeyError(f"No sample metadata for sample {missing[0]}")
        groups = samples.loc[m_values.columns, group_col]

        self.design_ = design_matrix(groups, reference)
        logger.info(
            f"Design: {len(groups)} samples, coefficients {list(self.design_.columns)}"
        )

        self.fit_ = LinearModelFit().fit(m_values, self.design_).ebayes()
        self.results_ = self.fit_.top_table(
            coef,
            annotation=annotation,
            beta=beta,
            groups=groups if beta is not None else None,
            reference=reference if beta is not None else None,
        )

        n_sig = int((self.results_["adj_p_value"] < self._params["adj_p_threshold"]).sum())
        logger.info(
            f"{n_sig} probes significant at adjusted p < {self._params['adj_p_threshold']}"
        )
        return self.results_
