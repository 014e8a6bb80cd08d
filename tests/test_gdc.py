"""
Tests for GDC acquisition with the HTTP layer replaced by fakes.
"""

import json

import pandas as pd
import pytest
import requests

from cholmeth.data_loaders import gdc
from cholmeth.data_loaders.gdc import GDCDownloader

HITS = [
    {"file_id": "f1", "file_name": "a.txt",
     "cases": [{"submitter_id": "TCGA-W5-AA2I",
                "samples": [{"submitter_id": "TCGA-W5-AA2I-01A", "sample_type": "Primary Tumor"}]}]},
    {"file_id": "f2", "file_name": "b.txt",
     "cases": [{"submitter_id": "TCGA-W5-AA2I",
                "samples": [{"submitter_id": "TCGA-W5-AA2I-11A",
                             "sample_type": "Solid Tissue Normal"}]}]},
    {"file_id": "f3", "file_name": "c.txt",
     "cases": [{"submitter_id": "TCGA-W5-AA2Q",
                "samples": [{"submitter_id": "TCGA-W5-AA2Q-01A", "sample_type": "Primary Tumor"}]}]},
]

CONTENT = {
    "f1": b"cg01\t0.10\ncg02\t0.80\ncg03\t0.55\n",
    "f2": b"cg01\t0.20\ncg02\t0.70\ncg03\t0.45\n",
    "f3": b"cg01\t0.15\ncg02\t0.90\ncg03\tNA\n",
}


class FakeResponse:
    def __init__(self, payload=None, content=b"", status=200):
        self._payload = payload
        self.content = content
        self.text = content.decode()
        self.status_code = status

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


@pytest.fixture
def fake_gdc(monkeypatch):
    calls = {"post": [], "get": []}

    def fake_post(url, data=None, headers=None, timeout=None):
        payload = json.loads(data)
        calls["post"].append(payload)
        start, size = payload["from"], payload["size"]
        hits = HITS[start:start + size]
        return FakeResponse({"data": {"hits": hits, "pagination": {"total": len(HITS)}}})

    def fake_get(url, timeout=None):
        calls["get"].append(url)
        return FakeResponse(content=CONTENT[url.rsplit("/", 1)[-1]])

    monkeypatch.setattr(gdc.requests, "post", fake_post)
    monkeypatch.setattr(gdc.requests, "get", fake_get)
    return calls


def test_query_paginates_and_filters(config, fake_gdc):
    config.gdc["page_size"] = 2
    manifest = GDCDownloader(config).query_files()

    assert len(fake_gdc["post"]) == 2
    assert list(manifest["sample_id"]) == [
        "TCGA-W5-AA2I-01A", "TCGA-W5-AA2I-11A", "TCGA-W5-AA2Q-01A"
    ]
    filters = fake_gdc["post"][0]["filters"]["content"]
    fields = {f["content"]["field"]: f["content"]["value"] for f in filters}
    assert fields["cases.project.project_id"] == ["TCGA-CHOL"]
    assert fields["platform"] == ["Illumina Human Methylation 450"]


def test_fetch_builds_validated_dataset(config, fake_gdc):
    dataset = GDCDownloader(config).fetch(config.base_dir / "raw")

    assert dataset.n_probes == 3 and dataset.n_samples == 3
    assert dataset.beta.loc["cg02", "TCGA-W5-AA2Q-01A"] == pytest.approx(0.90)
    assert pd.isna(dataset.beta.loc["cg03", "TCGA-W5-AA2Q-01A"])
    assert list(dataset.samples["tissue_type"]) == ["tumor", "normal", "tumor"]
    assert dataset.project == "TCGA-CHOL"
    assert (config.base_dir / "raw" / "f1_a.txt").exists()


def test_download_skips_existing_files(config, fake_gdc):
    downloader = GDCDownloader(config)
    manifest = downloader.query_files()
    dest = config.base_dir / "raw"

    downloader.download(manifest, dest)
    downloader.download(manifest, dest)

    assert len(fake_gdc["get"]) == 3


def test_out_of_range_beta_rejected(config, fake_gdc):
    bad_content = dict(CONTENT, f2=b"cg01\t1.20\ncg02\t0.70\ncg03\t0.45\n")
    downloader = GDCDownloader(config)
    manifest = downloader.query_files()
    dest = config.base_dir / "raw"
    paths = []
    for (file_id, file_name) in zip(manifest["file_id"], manifest["file_name"]):
        path = dest / f"{file_id}_{file_name}"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(bad_content[file_id])
        paths.append(path)

    with pytest.raises(ValueError, match="cg01"):
        downloader.prepare(manifest, paths)


def test_empty_query_raises(config, monkeypatch):
    monkeypatch.setattr(
        gdc.requests, "post",
        lambda *a, **k: FakeResponse({"data": {"hits": [], "pagination": {"total": 0}}}),
    )
    with pytest.raises(ValueError, match="no methylation files"):
        GDCDownloader(config).query_files()


def test_http_errors_propagate(config, monkeypatch):
    monkeypatch.setattr(gdc.requests, "post", lambda *a, **k: FakeResponse(status=503))
    with pytest.raises(requests.HTTPError):
        GDCDownloader(config).query_files()
