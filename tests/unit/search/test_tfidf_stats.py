import math

import pytest

from docindex_server.search.stats import calculate_idf, tf_idf


@pytest.mark.unit
def test_idf_is_zero_without_documents_or_matches():
    assert calculate_idf(0, 10) == 0.0
    assert calculate_idf(3, 0) == 0.0


@pytest.mark.unit
def test_idf_stays_positive_when_every_document_matches():
    assert calculate_idf(10, 10) == pytest.approx(1.0)


@pytest.mark.unit
def test_rarer_terms_weigh_more():
    assert calculate_idf(1, 100) > calculate_idf(50, 100)
    assert calculate_idf(1, 100) == pytest.approx(math.log(101 / 2) + 1)


@pytest.mark.unit
def test_document_frequency_is_clamped_to_collection_size():
    assert calculate_idf(20, 10) == calculate_idf(10, 10)


@pytest.mark.unit
def test_tf_idf_scales_with_term_frequency():
    assert tf_idf(0, 2.5) == 0.0
    assert tf_idf(3, 2.0) == 6.0
