"""
Loaders for static reference data.

- Probe annotation (chromosome, position, strand, SNP MAF, genes)
- Cross-reactive probe exclusion list
- Tab-delimited genome interval tables (CpG islands, DNase clusters, genes)
- UCSC kgXref transcript to gene symbol map
- Gene sets in GMT format
"""

import csv
import io
import logging
from pathlib import Path
from typing import Dict, List, Optional, Set, Union

import numpy as np
import pandas as pd
import requests

from .base import DataLoader

logger = logging.getLogger(__name__)

ANNOTATION_COLUMNS = ["chr", "pos", "strand", "snp_maf", "gene"]


class AnnotationLoader(DataLoader):
    """
    Load reference annotation tables used by filtering, plotting and enrichment.
    """

    def load(self, file_path: Union[str, Path], **kwargs) -> pd.DataFrame:
        """Load the probe annotation table (alias of load_probe_annotation)."""
        return self.load_probe_annotation(file_path, **kwargs)

    def load_probe_annotation(
        self,
        file_path: Union[str, Path],
        probe_col: str = "Name",
        chr_col: str = "chr",
        pos_col: str = "pos",
        strand_col: str = "strand",
        gene_col: str = "UCSC_RefGene_Name",
        maf_cols: Optional[List[str]] = None
    ) -> pd.DataFrame:
        """
        Load a probe annotation table exported from an array annotation package.

        The SNP columns listed in ``maf_cols`` are collapsed into one
        ``snp_maf`` value per probe (the largest MAF); a missing value means
        no SNP overlaps the probe.

        Args:
            file_path: CSV with one row per probe
            probe_col: Column holding probe identifiers
            chr_col: Chromosome column
            pos_col: Genomic position column
            strand_col: Strand column
            gene_col: ";"-separated gene names
            maf_cols: SNP minor allele frequency columns (default from config)

        Returns:
            DataFrame indexed by probe id with chr, pos, strand, snp_maf, gene
        """
        path = self._resolve_path(file_path)
        if maf_cols is None:
            maf_cols = self.config.filter_params["snp_maf_columns"]

        def read(path: Path) -> pd.DataFrame:
            logger.info(f"Loading probe annotation from {path.name}...")
            raw = pd.read_csv(path, low_memory=False)
            if probe_col not in raw.columns:
                raise KeyError(f"Annotation file {path.name} has no column '{probe_col}'")
            return self._tidy_annotation(
                raw.set_index(probe_col), chr_col, pos_col, strand_col, gene_col, maf_cols
            )

        annotation = self._cached(path, read)
        logger.info(f"Loaded annotation for {len(annotation)} probes")
        return annotation

    @staticmethod
    def _tidy_annotation(
        raw: pd.DataFrame,
        chr_col: str,
        pos_col: str,
        strand_col: str,
        gene_col: str,
        maf_cols: List[str]
    ) -> pd.DataFrame:
        """Reduce a raw annotation export to the standard columns."""
        annotation = pd.DataFrame(index=raw.index)
        annotation.index.name = "probe_id"
        annotation["chr"] = raw[chr_col]
        annotation["pos"] = pd.to_numeric(raw[pos_col], errors="coerce").astype("Int64")
        annotation["strand"] = raw[strand_col] if strand_col in raw.columns else "*"

        present = [c for c in maf_cols if c in raw.columns]
        if present:
            mafs = raw[present].apply(pd.to_numeric, errors="coerce")
            annotation["snp_maf"] = mafs.max(axis=1, skipna=True)
        else:
            logger.warning(f"None of the SNP MAF columns {maf_cols} found; no SNP filtering possible")
            annotation["snp_maf"] = np.nan

        if gene_col in raw.columns:
            annotation["gene"] = raw[gene_col].fillna("").astype(str)
        else:
            annotation["gene"] = ""
        return annotation[ANNOTATION_COLUMNS]

    def load_cross_reactive(
        self,
        source: Optional[str] = None,
        column: Optional[str] = None,
        max_header_rows: int = 5
    ) -> pd.Index:
        """
        Load the cross-reactive probe exclusion list.

        The header row is located by column name among the first rows, so
        any artefact rows above it are skipped whatever their number.

        Args:
            source: URL or path of the CSV (default from config)
            column: Name of the probe id column (default from config)
            max_header_rows: How many leading rows to search for the header

        Returns:
            Unique probe identifiers, in file order
        """
        if source is None:
            source = self.config.filter_params["cross_reactive_url"]
        if column is None:
            column = self.config.filter_params["cross_reactive_column"]

        if str(source).startswith(("http://", "https://")):
            logger.info(f"Fetching cross-reactive probe list from {source}")
            response = requests.get(source, timeout=self.config.gdc.get("timeout", 120))
            response.raise_for_status()
            text = response.text
        else:
            path = self._resolve_path(source)
            self._validate_file(path)
            text = path.read_text()

        wanted = column.strip().lower()
        header_row = None
        for row, line in enumerate(text.splitlines()[:max_header_rows]):
            cells = [c.strip().strip('"').lower() for c in line.split(",")]
            if wanted in cells:
                header_row = row
                break
        if header_row is None:
            raise ValueError(f"Cross-reactive list has no '{column}' column in its first {max_header_rows} rows")

        table = pd.read_csv(io.StringIO(text), skiprows=header_row, dtype=str, skip_blank_lines=False)
        name = next(c for c in table.columns if str(c).strip().lower() == wanted)
        values = table[name].dropna().str.strip()
        # Repeated header rows are artefacts, not probes
        values = values[(values != "") & (values.str.lower() != wanted)]
        probes = pd.Index(values.drop_duplicates().tolist(), name="probe_id")

        logger.info(f"Loaded {len(probes)} cross-reactive probes")
        return probes

    def load_intervals(
        self,
        file_path: Union[str, Path],
        columns: Dict[str, int]
    ) -> pd.DataFrame:
        """
        Load a tab-delimited genome table using fixed column positions.

        Args:
            file_path: Table path (no header; lines starting with # are skipped)
            columns: Mapping of output name -> 0-based column position; must
                     include chr, start and end

        Returns:
            DataFrame with the requested columns, start/end as integers
        """
        for key in ("chr", "start", "end"):
            if key not in columns:
                raise ValueError(f"Interval column mapping lacks '{key}'")

        path = self._resolve_path(file_path)
        self._validate_file(path)

        raw = pd.read_csv(path, sep="\t", header=None, comment="#", dtype=str)
        intervals = pd.DataFrame({
            name: raw.iloc[:, position] for name, position in columns.items()
        })
        intervals["start"] = intervals["start"].astype(int)
        intervals["end"] = intervals["end"].astype(int)

        logger.info(f"Loaded {len(intervals)} intervals from {path.name}")
        return intervals.reset_index(drop=True)

    def load_gene_symbols(
        self,
        file_path: Union[str, Path],
        id_col: int = 0,
        symbol_col: int = 4
    ) -> pd.Series:
        """
        Load the UCSC kgXref table as a transcript id -> gene symbol map.

        Args:
            file_path: kgXref table (tab-delimited, no header)
            id_col: 0-based position of the kgID column
            symbol_col: 0-based position of the geneSymbol column

        Returns:
            Series of gene symbols indexed by transcript id
        """
        path = self._resolve_path(file_path)
        self._validate_file(path)

        raw = pd.read_csv(
            path, sep="\t", header=None, comment="#", dtype=str,
            usecols=[id_col, symbol_col], quoting=csv.QUOTE_NONE
        )
        symbols = pd.Series(raw[symbol_col].str.strip().to_numpy(), index=raw[id_col].to_numpy())
        symbols = symbols[symbols.notna() & (symbols != "")]
        symbols = symbols[~symbols.index.duplicated()]

        logger.info(f"Loaded {len(symbols)} gene symbols from {path.name}")
        return symbols

    def load_gene_sets(self, file_path: Union[str, Path]) -> Dict[str, Set[str]]:
        """
        Load gene sets from a GMT file.

        Each line is: set name, description, then member genes, tab-separated.
        """
        path = self._resolve_path(file_path)
        self._validate_file(path)

        gene_sets: Dict[str, Set[str]] = {}
        with open(path, "r") as f:
            for line in f:
                fields = line.rstrip("\n").split("\t")
                if len(fields) < 3:
                    continue
                gene_sets[fields[0]] = {g for g in fields[2:] if g}

        logger.info(f"Loaded {len(gene_sets)} gene sets from {path.name}")
        return gene_sets


def probe_genes(annotation: pd.DataFrame, gene_col: str = "gene") -> pd.DataFrame:
    """
    Expand the ";"-separated gene field into one (probe_id, gene) row per pair.

    Probes without a gene are dropped; repeated genes per probe are collapsed.
    """
    genes = annotation[gene_col].fillna("").astype(str).str.split(";")
    pairs = genes.explode().str.strip()
    pairs = pairs[pairs != ""]
    table = pd.DataFrame({"probe_id": pairs.index, "gene": pairs.values})
    return table.drop_duplicates().reset_index(drop=True)


def label_genes(genes: pd.DataFrame, symbols: pd.Series, name_col: str = "name") -> pd.DataFrame:
    """Replace transcript ids with gene symbols; ids without a symbol are kept."""
    labelled = genes.copy()
    labelled[name_col] = labelled[name_col].map(symbols).fillna(labelled[name_col])
    return labelled
