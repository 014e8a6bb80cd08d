"""
Tests for region track assembly and drawing.
"""

import pandas as pd
import pytest

from cholmeth.visualization.tracks import RegionTracks, display_window, render_region

SAMPLES = ["TCGA-AA-0001-01A", "TCGA-AA-0002-01A", "TCGA-AA-0001-11A", "TCGA-AA-0002-11A"]


@pytest.fixture
def regions():
    return pd.DataFrame({"chr": ["chr2", "chr1"], "start": [1000, 50_000], "end": [1400, 50_800]})


@pytest.fixture
def layers():
    genes = pd.DataFrame({
        "chr": ["chr2", "chr2", "chr5"],
        "start": [500, 5000, 1000],
        "end": [1100, 6000, 2000],
        "strand": ["+", "-", "+"],
        "name": ["GENE_A", "GENE_FAR", "GENE_OTHER"],
    })
    cpg_islands = pd.DataFrame({"chr": ["chr2", "chr2"], "start": [1300, 9000], "end": [1600, 9500]})
    dnase = pd.DataFrame({"chr": ["chr2"], "start": [600], "end": [850]})
    return genes, cpg_islands, dnase


@pytest.fixture
def signal():
    annotation = pd.DataFrame(
        {"chr": ["chr2", "chr2", "chr2", "chr2"], "pos": [1200, 1000, 1400, 3000]},
        index=["cgB", "cgA", "cgC", "cgOut"],
    )
    beta = pd.DataFrame(
        [[0.8, 0.7, 0.2, 0.3]] * 4, index=["cgA", "cgB", "cgC", "cgOut"], columns=SAMPLES
    )
    groups = pd.Series(["tumor", "tumor", "normal", "normal"], index=SAMPLES)
    return beta, groups, annotation


def test_display_window_padding():
    region = pd.Series({"chr": "chr2", "start": 1000, "end": 1400})
    assert display_window(region, 0.25) == ("chr2", 900, 1500)
    assert display_window(region, 0.0) == ("chr2", 1000, 1400)

    near_start = pd.Series({"chr": "chr2", "start": 50, "end": 850})
    assert display_window(near_start, 0.25)[1] == 0

    with pytest.raises(ValueError):
        display_window(region, -0.1)


def test_build_restricts_layers(config, regions, layers, signal):
    beta, groups, annotation = signal
    data = RegionTracks(config).build(regions, 0, beta, groups, annotation, *layers)

    assert data.window == ("chr2", 900, 1500)
    assert list(data.genes["name"]) == ["GENE_A"]
    assert len(data.cpg_islands) == 1
    assert data.dnase.empty
    assert list(data.beta.index) == ["cgA", "cgB", "cgC"]
    assert list(data.positions) == [1000, 1200, 1400]
    assert [name for name, _ in data.tracks] == ["axis", "genes", "cpg_islands", "dnase", "methylation"]


def test_custom_coordinates(config, regions, layers, signal):
    beta, groups, annotation = signal
    data = RegionTracks(config).build(regions, ("chr2", 2800, 3200), beta, groups, annotation, *layers)

    assert list(data.beta.index) == ["cgOut"]
    assert data.region.name == "custom"


def test_region_index_out_of_range(config, regions, layers, signal):
    beta, groups, annotation = signal
    with pytest.raises(IndexError, match="out of range"):
        RegionTracks(config).build(regions, 5, beta, groups, annotation, *layers)


def test_region_without_probes(config, regions, layers, signal):
    beta, groups, annotation = signal
    with pytest.raises(ValueError, match="No probes"):
        RegionTracks(config).build(regions, 1, beta, groups, annotation, *layers)


def test_render_writes_pdf(config, regions, layers, signal, tmp_path):
    beta, groups, annotation = signal
    data = RegionTracks(config).build(regions, 0, beta, groups, annotation, *layers)

    path = render_region(data, tmp_path / "plots" / "region_0.pdf", config)

    assert path.exists() and path.stat().st_size > 0
