#!/usr/bin/env python3
"""
TCGA Methylation Array Analysis Pipeline

Main entry point. Runs, in order:
    1. Data acquisition from the GDC
    2. Matrix extraction
    3. Probe filtering
    4. Beta -> M-value transform
    5. Differential methylation (DMPs)
    6. Region calling (DMRs)
    7. Region visualization
    8. Gene set enrichment

Usage:
    python main.py                              # Run full pipeline
    python main.py --resume                     # Reuse filtered matrices on disk
    python main.py --region-index 2             # Plot the third region
    python main.py --skip-enrichment            # Stop after the region plot
    python main.py --config configs/default.yaml
    python main.py --samples data/samples.csv  # Groups from a sample sheet

Examples:
    # Full run on the cholangiocarcinoma cohort
    python main.py --project TCGA-CHOL

    # Re-run statistics only, with debug output
    python main.py --resume -v
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from cholmeth.data_loaders import (  # noqa: E402
    AnnotationLoader,
    GDCDownloader,
    MetadataLoader,
    MethylationDataLoader,
    label_genes,
    probe_genes,
)
from cholmeth.models import (  # noqa: E402
    DifferentialMethylation,
    GeneSetEnrichment,
    RegionCaller,
    significant_probes,
)
from cholmeth.preprocessing import MValueTransformer, ProbeFilter  # noqa: E402
from cholmeth.utils.config import load_config  # noqa: E402
from cholmeth.utils.logging_utils import set_level, setup_logger  # noqa: E402
from cholmeth.visualization import PlotGenerator, RegionTracks, render_region  # noqa: E402

logger = setup_logger("cholmeth", level=logging.INFO)


def run_stage(step: int, name: str, func, *args, **kwargs):
    """Run one pipeline stage; log and re-raise any failure with the stage name."""
    logger.info("")
    logger.info(f"[Step {step}] {name}")
    logger.info("-" * 40)
    try:
        return func(*args, **kwargs)
    except Exception as e:
        logger.error(f"[Step {step}] {name} failed: {e}")
        raise


def acquire(config, loader: MethylationDataLoader, resume: bool):
    """Load the prepared dataset checkpoint or download it from the GDC."""
    dataset_path = config.get_data_path("dataset")
    if resume and dataset_path.exists():
        return loader.load_dataset(dataset_path)

    dataset = GDCDownloader(config).fetch()
    loader.save_dataset(dataset, dataset_path)
    return dataset


def filter_probes(config, beta, annotation, loader: MethylationDataLoader):
    """Apply the probe filter and checkpoint the result."""
    cross_reactive = AnnotationLoader(config).load_cross_reactive()
    probe_filter = ProbeFilter.from_config(config, annotation, cross_reactive)
    filtered = probe_filter.filter(beta)
    loader.save_matrix(filtered, config.get_data_path("beta_filtered"))
    return filtered


def to_m_values(config, beta, loader: MethylationDataLoader):
    """Compute M-values and checkpoint them."""
    transformer = MValueTransformer(offset=config.transform_params["offset"])
    m_values = transformer.transform(beta)
    loader.save_matrix(m_values, config.get_data_path("m_filtered"))
    return m_values


def select_samples(config, beta, m_values, samples, sample_sheet=None):
    """Restrict the matrices to samples of the compared groups."""
    metadata = MetadataLoader(config)
    if sample_sheet:
        samples = metadata.load(sample_sheet)
    params = config.model_params
    samples = metadata.select_groups(
        samples, list(beta.columns), [params["reference_group"], params["coef"]],
        params["group_column"]
    )
    columns = list(samples.index)
    return beta[columns], m_values[columns], samples


def plot_region(config, regions, region_index, beta, groups, annotation, out_path):
    """Assemble and draw the tracks of one region."""
    annotation_loader = AnnotationLoader(config)
    layers = {
        key: annotation_loader.load_intervals(
            config.get_data_path(key), config.interval_columns[key]
        )
        for key in ("genes", "cpg_islands", "dnase")
    }
    symbols_path = config.get_data_path("gene_symbols")
    if symbols_path.exists():
        layers["genes"] = label_genes(
            layers["genes"], annotation_loader.load_gene_symbols(symbols_path)
        )
    else:
        logger.warning(f"{symbols_path.name} not found; genes are labelled by transcript id")
    data = RegionTracks(config).build(
        regions, region_index, beta, groups, annotation,
        layers["genes"], layers["cpg_islands"], layers["dnase"],
    )
    return render_region(data, out_path, config)


def enrich(config, results, annotation):
    """Run gene set enrichment on the significant probes."""
    threshold = config.model_params["adj_p_threshold"]
    sig = significant_probes(results, threshold)
    gene_sets = AnnotationLoader(config).load_gene_sets(config.enrichment_params["gene_sets"])
    pairs = probe_genes(annotation.reindex(results.index))
    return GeneSetEnrichment(config).run(sig, results.index, pairs, gene_sets)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="TCGA DNA Methylation Array Analysis Pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    parser.add_argument(
        "--project",
        default=None,
        help="GDC project to analyze (default: config file, then TCGA-CHOL)"
    )
    parser.add_argument(
        "--platform",
        default=None,
        help="Array platform as named by the GDC (default: config file, then 450K)"
    )
    parser.add_argument(
        "--config",
        help="Path to custom configuration file"
    )
    parser.add_argument(
        "--samples",
        help="Sample sheet CSV (sample_id, tissue_type) overriding barcode-derived groups"
    )
    parser.add_argument(
        "--resume",
        action="store_true",
        help="Reuse dataset and filtered matrix checkpoints when present"
    )
    parser.add_argument(
        "--region-index",
        type=int,
        default=None,
        help="Index of the region to plot (default from config)"
    )
    parser.add_argument(
        "--output-dir",
        help="Directory for tables and plots (default: results/)"
    )
    parser.add_argument(
        "--skip-plots",
        action="store_true",
        help="Skip QC and region plots"
    )
    parser.add_argument(
        "--skip-enrichment",
        action="store_true",
        help="Skip gene set enrichment"
    )
    parser.add_argument(
        "--log-file",
        help="Also write the run log to this file"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output"
    )

    args = parser.parse_args()

    if args.log_file:
        setup_logger("cholmeth", level=logging.INFO, log_file=args.log_file)
    if args.verbose:
        set_level(logging.DEBUG)

    logger.info("=" * 60)
    logger.info("TCGA Methylation Array Analysis Pipeline")
    logger.info("=" * 60)

    config = load_config(
        config_file=args.config,
        project=args.project,
        platform=args.platform
    )
    logger.info(f"Project: {config.project_name}")
    logger.info(f"Platform: {config.platform}")
    if args.output_dir:
        config.set_output_dir(args.output_dir)
    config.ensure_output_dirs()

    region_index = (
        args.region_index if args.region_index is not None
        else config.viz_params["region_index"]
    )

    loader = MethylationDataLoader(config)
    annotation = AnnotationLoader(config).load_probe_annotation(config.get_data_path("annotation"))
    resume = args.resume and loader.has_checkpoint()

    if resume:
        logger.info("Resuming from filtered matrix checkpoints (steps 1-4 skipped)")
        beta = loader.load_matrix("beta_filtered")
        m_values = loader.load_matrix("m_filtered")
        samples = MetadataLoader(config).from_barcodes(list(beta.columns))
    else:
        dataset = run_stage(1, "Data Acquisition", acquire, config, loader, args.resume)
        beta, samples = run_stage(2, "Matrix Extraction", loader.extract, dataset)
        del dataset
        # Rebinding beta releases the unfiltered matrix
        beta = run_stage(3, "Probe Filter", filter_probes, config, beta, annotation, loader)
        m_values = run_stage(4, "Beta -> M Transform", to_m_values, config, beta, loader)

    beta, m_values, samples = select_samples(config, beta, m_values, samples, args.samples)
    groups = MetadataLoader(config).group_labels(
        samples, list(beta.columns), config.model_params["group_column"]
    )

    dmp = DifferentialMethylation(config)
    results = run_stage(5, "Differential Testing", dmp.run, m_values, samples, annotation, beta)
    results.to_csv(config.get_output_path("dmps.csv", "tables"))

    regions = run_stage(6, "Region Aggregation", RegionCaller(config).find, results)
    regions.to_csv(config.get_output_path("dmrs.csv", "tables"))

    if not args.skip_plots:
        run_stage(
            7, "Region Visualization", plot_region, config, regions, region_index,
            beta, groups, annotation, config.get_output_path(f"region_{region_index}.pdf"),
        )
        plotter = PlotGenerator(config)
        plotter.plot_density(beta, m_values, groups, config.get_output_path("density.pdf"))
        plotter.plot_pca(m_values, groups, config.get_output_path("pca.pdf"))
        plotter.plot_top_probes(beta, groups, results, config.get_output_path("top_probes.pdf"))

    if not args.skip_enrichment:
        enrichment = run_stage(8, "Enrichment Analysis", enrich, config, results, annotation)
        enrichment.to_csv(config.get_output_path("go_enrichment.csv", "tables"), index=False)
        if not args.skip_plots and not enrichment.empty:
            PlotGenerator(config).plot_enrichment(
                enrichment, config.get_output_path("go_enrichment.pdf")
            )

    logger.info("")
    logger.info("=" * 60)
    logger.info("Pipeline completed successfully!")
    logger.info("=" * 60)
    logger.info(f"Results saved to: {config.output_dir}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
