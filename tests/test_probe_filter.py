"""
Tests for the probe filter predicates and their combination.
"""

import logging
from itertools import permutations

import numpy as np
import pandas as pd
import pytest

from cholmeth.preprocessing.probe_filter import (
    ProbeFilter,
    autosomal,
    complete_rows,
    not_cross_reactive,
    snp_free,
    unannotated,
)

CROSS_REACTIVE = ["cg03", "cg99"]


@pytest.fixture
def probe_filter(toy_annotation):
    return ProbeFilter(toy_annotation, cross_reactive=CROSS_REACTIVE)


def test_toy_matrix_keeps_two_clean_probes(toy_beta, probe_filter):
    """Missing value, chrX and cross-reactive probes are removed; order is kept."""
    filtered = probe_filter.filter(toy_beta)
    assert list(filtered.index) == ["cg04", "cg05"]
    pd.testing.assert_frame_equal(filtered, toy_beta.loc[["cg04", "cg05"]])


def test_order_independent(toy_beta, probe_filter):
    expected = probe_filter.filter(toy_beta)
    for order in permutations(ProbeFilter.PREDICATES):
        result = probe_filter.apply_sequential(toy_beta, order)
        pd.testing.assert_frame_equal(result, expected)


def test_idempotent(toy_beta, probe_filter):
    once = probe_filter.filter(toy_beta)
    twice = probe_filter.filter(once)
    pd.testing.assert_frame_equal(once, twice)


def test_retained_probes_satisfy_every_predicate(toy_beta, toy_annotation, probe_filter):
    filtered = probe_filter.filter(toy_beta)

    assert not filtered.isna().any().any()
    assert not toy_annotation.loc[filtered.index, "chr"].isin(["chrX", "chrY"]).any()
    assert not filtered.index.isin(CROSS_REACTIVE).any()


def test_input_not_modified(toy_beta, probe_filter):
    original = toy_beta.copy()
    probe_filter.filter(toy_beta)
    probe_filter.apply_sequential(toy_beta, ["cross_reactive", "complete"])
    pd.testing.assert_frame_equal(toy_beta, original)


def test_report_counts(toy_beta, probe_filter):
    probe_filter.filter(toy_beta)
    report = probe_filter.report_.set_index("predicate")["n_failed"]
    assert report.to_dict() == {"complete": 1, "autosomal": 1, "snp": 0, "cross_reactive": 1}


def test_snp_maf_threshold(toy_beta, toy_annotation):
    annotation = toy_annotation.copy()
    annotation.loc["cg04", "snp_maf"] = 0.10

    mask = snp_free(toy_beta, annotation, maf_threshold=0.05)

    assert not mask["cg04"]
    assert mask["cg05"]  # MAF exactly at the threshold passes
    assert mask["cg01"]  # no SNP


def test_chromosome_naming_is_normalized(toy_beta, toy_annotation):
    annotation = toy_annotation.copy()
    annotation["chr"] = annotation["chr"].str.replace("chr", "", regex=False)

    mask = autosomal(toy_beta, annotation, sex_chromosomes=["chrX", "chrY"])
    assert list(mask[~mask].index) == ["cg02"]


@pytest.mark.parametrize("policy, kept", [("include", True), ("exclude", False)])
def test_unknown_annotation_policy(toy_beta, toy_annotation, policy, kept):
    beta = pd.concat([
        toy_beta,
        pd.DataFrame([[0.4, 0.4, 0.5, 0.5]], index=["cg06"], columns=toy_beta.columns),
    ])
    probe_filter = ProbeFilter(toy_annotation, CROSS_REACTIVE, unknown_annotation=policy)

    filtered = probe_filter.filter(beta)

    assert probe_filter.n_unknown_ == 1
    assert ("cg06" in filtered.index) is kept


@pytest.mark.parametrize("policy, kept", [("include", True), ("exclude", False)])
def test_annotated_probe_without_chromosome_follows_policy(
    toy_beta, toy_annotation, policy, kept, caplog
):
    annotation = toy_annotation.copy()
    annotation.loc["cg04", "chr"] = np.nan
    probe_filter = ProbeFilter(annotation, CROSS_REACTIVE, unknown_annotation=policy)

    with caplog.at_level(logging.WARNING, logger="cholmeth.preprocessing.probe_filter"):
        filtered = probe_filter.filter(toy_beta)

    assert probe_filter.n_unknown_ == 1
    assert ("cg04" in filtered.index) is kept
    assert "cg04" in caplog.text
    # the chromosome and SNP checks agree on which probes are unknown
    masks = probe_filter.masks(toy_beta)
    assert masks.loc["cg04", "autosomal"] == masks.loc["cg04", "snp"] == kept


def test_unannotated_covers_missing_rows_and_empty_chromosomes(toy_beta, toy_annotation):
    annotation = toy_annotation.drop(index="cg05")
    annotation.loc["cg01", "chr"] = np.nan

    assert list(unannotated(toy_beta, annotation)) == [True, False, False, False, True]


def test_invalid_policy_rejected(toy_annotation):
    with pytest.raises(ValueError, match="unknown_annotation"):
        ProbeFilter(toy_annotation, unknown_annotation="maybe")


def test_unknown_predicate_name(toy_beta, probe_filter):
    with pytest.raises(KeyError):
        probe_filter.apply_sequential(toy_beta, ["complete", "nonsense"])


def test_duplicated_probe_ids_rejected(toy_beta, probe_filter):
    duplicated = pd.concat([toy_beta, toy_beta.iloc[[3]]])
    with pytest.raises(ValueError, match="cg04"):
        probe_filter.filter(duplicated)


def test_individual_predicates(toy_beta):
    assert list(complete_rows(toy_beta)) == [False, True, True, True, True]
    assert list(not_cross_reactive(toy_beta, CROSS_REACTIVE)) == [True, True, False, True, True]


def test_from_config(config, toy_beta, toy_annotation):
    config.filter_params["maf_threshold"] = 0.001
    probe_filter = ProbeFilter.from_config(config, toy_annotation, CROSS_REACTIVE)

    filtered = probe_filter.filter(toy_beta)
    # cg05 carries a SNP with MAF 0.05, above the stricter threshold
    assert list(filtered.index) == ["cg04"]
    assert np.isclose(probe_filter.maf_threshold, 0.001)
