"""
Plotting functions for methylation QC and differential methylation results.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from matplotlib.lines import Line2D
from sklearn.decomposition import PCA
from sklearn.preprocessing import StandardScaler

from .style import get_color_palette, group_color, save_figure, setup_publication_style

logger = logging.getLogger(__name__)


class PlotGenerator:
    """
    Generate publication-ready plots for methylation analysis.
    """

    def __init__(self, config: Optional[Any] = None):
        """
        Initialize plot generator.

        Args:
            config: Configuration object with visualization parameters
        """
        self.config = config
        self.colors = get_color_palette(config)

        # Default figure sizes
        self.fig_sizes = {
            "single": (6, 5),
            "wide": (8, 6),
            "tall": (6, 8)
        }

        if config is not None and hasattr(config, "viz_params"):
            if "figure_sizes" in config.viz_params:
                self.fig_sizes.update(config.viz_params["figure_sizes"])

        setup_publication_style(config)

    def plot_density(
        self,
        beta: pd.DataFrame,
        m_values: pd.DataFrame,
        groups: pd.Series,
        output_path: Union[str, Path],
        max_probes: int = 10000,
        random_state: int = 42
    ) -> None:
        """
        Plot per-sample beta and M-value densities side by side.

        Args:
            beta: Beta values, probes as rows
            m_values: M-values with the same shape as beta
            groups: Group label per sample id
            output_path: Path to save figure
            max_probes: Probes sampled per density curve
            random_state: Seed for probe sampling
        """
        output_path = Path(output_path)
        logger.info(f"Generating density plot -> {output_path}")

        if beta.shape[0] > max_probes:
            probes = beta.sample(n=max_probes, random_state=random_state).index
        else:
            probes = beta.index

        fig, axes = plt.subplots(1, 2, figsize=self.fig_sizes["wide"])
        for ax, values, label in [
            (axes[0], beta, "Beta value"),
            (axes[1], m_values, "M-value"),
        ]:
            subset = values.loc[probes]
            for sample in subset.columns:
                group = groups.get(sample, "unknown")
                sns.kdeplot(
                    subset[sample].dropna(),
                    color=group_color(self.colors, group),
                    linewidth=0.8,
                    alpha=0.6,
                    ax=ax,
                )
            ax.set_xlabel(label)
            ax.set_ylabel("Density")

        axes[0].set_xlim(0, 1)
        handles = [
            Line2D([0], [0], color=group_color(self.colors, g), lw=2, label=g)
            for g in sorted(groups.unique())
        ]
        axes[1].legend(handles=handles, loc="best", frameon=True, fancybox=False, edgecolor="black")
        fig.suptitle("Methylation Distribution")

        save_figure(fig, output_path, self.config)
        logger.info("  Density plot saved")

    def plot_pca(
        self,
        values: pd.DataFrame,
        groups: pd.Series,
        output_path: Union[str, Path],
        top_variable: int = 1000,
        title: Optional[str] = None
    ) -> None:
        """
        PCA of samples on the most variable probes.

        Args:
            values: M-values (or betas), probes as rows
            groups: Group label per sample id
            output_path: Path to save figure
            top_variable: Number of most variable probes used
            title: Optional custom title
        """
        output_path = Path(output_path)
        logger.info(f"Generating PCA plot -> {output_path}")

        variances = values.var(axis=1)
        probes = variances.nlargest(min(top_variable, len(variances))).index
        X = values.loc[probes].T.to_numpy()

        X_scaled = StandardScaler().fit_transform(X)
        pca = PCA(n_components=2)
        coords = pca.fit_transform(X_scaled)
        exp_var = pca.explained_variance_ratio_

        pca_df = pd.DataFrame(coords, columns=["PC1", "PC2"], index=values.columns)
        pca_df["label"] = groups.reindex(values.columns).fillna("unknown").to_numpy()

        fig, ax = plt.subplots(figsize=self.fig_sizes["single"])
        for label in sorted(pca_df["label"].unique()):
            mask = pca_df["label"] == label
            ax.scatter(
                pca_df.loc[mask, "PC1"],
                pca_df.loc[mask, "PC2"],
                c=group_color(self.colors, label),
                s=60,
                alpha=0.7,
                label=label,
                edgecolors="white",
                linewidths=0.5,
            )

        ax.set_xlabel(f"PC1 ({exp_var[0]*100:.1f}%)")
        ax.set_ylabel(f"PC2 ({exp_var[1]*100:.1f}%)")
        ax.set_title(title or f"PCA ({len(probes)} most variable probes)")
        ax.legend(loc="best", frameon=True, fancybox=False, edgecolor="black")
        ax.grid(True, alpha=0.3, linestyle="--")

        save_figure(fig, output_path, self.config)
        logger.info("  PCA plot saved")

    def plot_top_probes(
        self,
        beta: pd.DataFrame,
        groups: pd.Series,
        top_table: pd.DataFrame,
        output_path: Union[str, Path],
        n_probes: int = 4
    ) -> None:
        """
        Beta values of the most significant probes by group.

        Args:
            beta: Beta values, probes as rows
            groups: Group label per sample id
            top_table: Differential testing results, most significant first
            output_path: Path to save figure
            n_probes: Number of probes to show
        """
        output_path = Path(output_path)
        logger.info(f"Generating top probe plot -> {output_path}")

        probes = [p for p in top_table.index[:n_probes] if p in beta.index]
        if not probes:
            raise ValueError("None of the top probes are present in the beta matrix")

        long = (
            beta.loc[probes]
            .T.assign(group=groups.reindex(beta.columns).to_numpy())
            .melt(id_vars="group", var_name="probe", value_name="beta")
        )
        palette: Dict[str, str] = {g: group_color(self.colors, g) for g in long["group"].unique()}

        fig, axes = plt.subplots(1, len(probes), figsize=(3 * len(probes), 4), sharey=True, squeeze=False)
        for ax, probe in zip(axes[0], probes):
            data = long[long["probe"] == probe]
            sns.boxplot(data=data, x="group", y="beta", hue="group", palette=palette,
                        showfliers=False, ax=ax, legend=False)
            sns.stripplot(data=data, x="group", y="beta", color="black", size=3, alpha=0.6, ax=ax)
            adj_p = top_table.loc[probe, "adj_p_value"]
            ax.set_title(f"{probe}\nadj. p = {adj_p:.2e}")
            ax.set_xlabel("")
            ax.set_ylim(0, 1)
        axes[0][0].set_ylabel("Beta value")

        plt.tight_layout()
        save_figure(fig, output_path, self.config)
        logger.info("  Top probe plot saved")

    def plot_enrichment(
        self,
        enrichment: pd.DataFrame,
        output_path: Union[str, Path],
        n_terms: int = 15
    ) -> None:
        """
        Bar chart of the most enriched gene sets.

        Args:
            enrichment: Output of GeneSetEnrichment.run
            output_path: Path to save figure
            n_terms: Number of terms to show
        """
        output_path = Path(output_path)
        logger.info(f"Generating enrichment plot -> {output_path}")

        top = enrichment.head(n_terms).iloc[::-1]
        fig, ax = plt.subplots(figsize=self.fig_sizes["wide"])
        ax.barh(top["term"], -np.log10(top["p_value"].clip(lower=1e-300)),
                color=self.colors.get("tumor"), alpha=0.8)
        ax.set_xlabel("-log10(p-value)")
        ax.set_title("Gene Set Enrichment")
        ax.grid(True, alpha=0.3, linestyle="--", axis="x")

        plt.tight_layout()
        save_figure(fig, output_path, self.config)
        logger.info("  Enrichment plot saved")
