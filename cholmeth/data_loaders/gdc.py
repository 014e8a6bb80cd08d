"""
Acquisition of TCGA methylation array data from the NCI Genomic Data Commons.

Queries the GDC ``files`` endpoint for the beta-value files of one project
and platform, downloads them through the ``data`` endpoint and assembles a
probes x samples matrix plus a sample metadata table.

Network errors are not retried; ``requests`` exceptions propagate as-is.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd
import requests

from .dataset import MethylationDataset
from .metadata import MetadataLoader, tissue_from_barcode

logger = logging.getLogger(__name__)

QUERY_FIELDS = [
    "file_id",
    "file_name",
    "cases.case_id",
    "cases.submitter_id",
    "cases.samples.submitter_id",
    "cases.samples.sample_type",
]


class GDCDownloader:
    """
    Fetch and prepare a methylation beta-value dataset from the GDC.

    Example:
        >>> downloader = GDCDownloader(config)
        >>> dataset = downloader.fetch()
        >>> dataset.beta.shape
        (485577, 45)
    """

    def __init__(self, config: Any):
        """
        Initialize downloader.

        Args:
            config: Configuration object with ``gdc`` settings, project and platform
        """
        self.config = config
        self.api_url = config.gdc["api_url"].rstrip("/")
        self.timeout = config.gdc.get("timeout", 120)
        self.page_size = config.gdc.get("page_size", 100)

    def _filters(self) -> Dict[str, Any]:
        def term(field, value):
            return {"op": "in", "content": {"field": field, "value": [value]}}

        return {
            "op": "and",
            "content": [
                term("cases.project.project_id", self.config.project_name),
                term("data_category", self.config.gdc["data_category"]),
                term("data_type", self.config.gdc["data_type"]),
                term("platform", self.config.platform),
            ],
        }

    def query_files(self) -> pd.DataFrame:
        """
        List the beta-value files of the configured project and platform.

        Returns:
            DataFrame with file_id, file_name, sample_id, case_id, sample_type
        """
        logger.info(
            f"Querying GDC for {self.config.project_name} "
            f"({self.config.platform})..."
        )

        rows: List[Dict[str, str]] = []
        offset = 0
        while True:
            payload = {
                "filters": self._filters(),
                "fields": ",".join(QUERY_FIELDS),
                "format": "JSON",
                "size": self.page_size,
                "from": offset,
            }
            response = requests.post(
                f"{self.api_url}/files",
                data=json.dumps(payload),
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()["data"]

            for hit in data["hits"]:
                rows.extend(self._parse_hit(hit))

            offset += len(data["hits"])
            total = data["pagination"]["total"]
            if not data["hits"] or offset >= total:
                break

        if not rows:
            raise ValueError(
                f"GDC returned no methylation files for project "
                f"{self.config.project_name}, platform {self.config.platform}"
            )

        manifest = pd.DataFrame(rows)
        logger.info(f"Found {len(manifest)} beta-value files")
        return manifest

    @staticmethod
    def _parse_hit(hit: Dict[str, Any]) -> List[Dict[str, str]]:
        rows = []
        for case in hit.get("cases", []):
            for sample in case.get("samples", []):
                rows.append({
                    "file_id": hit["file_id"],
                    "file_name": hit["file_name"],
                    "sample_id": sample["submitter_id"],
                    "case_id": case["submitter_id"],
                    "sample_type": sample.get("sample_type"),
                })
        return rows

    def download(
        self,
        manifest: pd.DataFrame,
        dest_dir: Union[str, Path]
    ) -> List[Path]:
        """
        Download every file in the manifest, skipping files already present.

        Args:
            manifest: Output of :meth:`query_files`
            dest_dir: Directory to store the files in

        Returns:
            Local paths, in manifest order
        """
        dest_dir = Path(dest_dir)
        dest_dir.mkdir(parents=True, exist_ok=True)

        paths = []
        for i, (file_id, file_name) in enumerate(
            zip(manifest["file_id"], manifest["file_name"]), start=1
        ):
            path = dest_dir / f"{file_id}_{file_name}"
            if path.exists():
                logger.debug(f"Already downloaded: {path.name}")
            else:
                logger.info(f"Downloading {i}/{len(manifest)}: {file_name}")
                response = requests.get(
                    f"{self.api_url}/data/{file_id}", timeout=self.timeout
                )
                response.raise_for_status()
                path.write_bytes(response.content)
            paths.append(path)
        return paths

    @staticmethod
    def read_beta_file(path: Union[str, Path]) -> pd.Series:
        """Read one two-column (probe id, beta) file."""
        table = pd.read_csv(path, sep="\t", header=None, index_col=0, usecols=[0, 1])
        values = pd.to_numeric(table.iloc[:, 0], errors="coerce")
        values.index.name = "probe_id"
        return values

    def prepare(
        self,
        manifest: pd.DataFrame,
        paths: List[Path]
    ) -> MethylationDataset:
        """
        Assemble downloaded files into a MethylationDataset.

        Args:
            manifest: Output of :meth:`query_files`
            paths: Output of :meth:`download`, same order as manifest

        Returns:
            Validated dataset keyed by sample barcode
        """
        if len(paths) != len(manifest):
            raise ValueError(
                f"Manifest lists {len(manifest)} files but {len(paths)} paths were given"
            )

        columns: Dict[str, pd.Series] = {}
        for sample_id, path in zip(manifest["sample_id"], paths):
            if sample_id in columns:
                logger.warning(f"Duplicate file for sample {sample_id}, keeping the first")
                continue
            columns[sample_id] = self.read_beta_file(path)

        beta = pd.concat(columns, axis=1)
        beta.columns.name = "sample_id"

        samples = (
            manifest.drop_duplicates("sample_id")
            .set_index("sample_id")
            .loc[beta.columns, ["case_id", "sample_type", "file_id"]]
        )
        samples["tissue_type"] = [tissue_from_barcode(s) for s in samples.index]
        MetadataLoader(self.config).summarize(samples)

        dataset = MethylationDataset(
            beta=beta,
            samples=samples,
            project=self.config.project_name,
            platform=self.config.platform,
            info={"n_files": len(manifest)},
        )
        logger.info(f"Prepared {dataset}")
        return dataset.validate()

    def fetch(self, dest_dir: Optional[Union[str, Path]] = None) -> MethylationDataset:
        """Query, download and prepare in one call."""
        if dest_dir is None:
            dest_dir = self.config.get_data_path("raw_dir")
        manifest = self.query_files()
        paths = self.download(manifest, dest_dir)
        return self.prepare(manifest, paths)
