"""
Tests for pattern-based property extraction.

Tests cover:
1. Labeled and generic number patterns
2. URL and DOI patterns
3. Date patterns
4. Text and boolean patterns
5. Deduplication and the per-property cap
"""

import pytest

from property_pipeline.config import ExtractionConfig
from property_pipeline.extract.deterministic import DeterministicExtractor
from property_pipeline.parse.models import CandidateSource, Property
from property_pipeline.parse.text_processor import TextProcessor


def _sections(*sentences, name="results"):
    return {name: {"sentences": list(sentences)}}


class TestNumbers:
    """Tests for number extraction."""

    def test_labeled_number(self):
        """Test that a number after its label is extracted at 0.7."""
        extractor = DeterministicExtractor()
        results = extractor.extract(
            _sections("Accuracy: 95.3%"),
            {"label": "accuracy", "dataType": "number"},
        )

        assert len(results) == 1
        assert results[0].value == "95.3"
        assert results[0].confidence == pytest.approx(0.7)
        assert results[0].source == CandidateSource.DETERMINISTIC
        assert results[0].section == "results"
        assert results[0].sentence == "Accuracy: 95.3%"

    def test_number_before_label(self):
        """Test that a number preceding its label is extracted at 0.7."""
        extractor = DeterministicExtractor()
        results = extractor.extract(
            _sections("The network has 12 layers in total."),
            Property(label="layers", data_type="integer"),
        )

        assert results[0].value == "12"
        assert results[0].confidence == pytest.approx(0.7)

    def test_generic_numbers(self):
        """Test that unlabeled numbers are extracted at 0.5."""
        extractor = DeterministicExtractor()
        results = extractor.extract(
            _sections("Training took 12 hours on 8 GPUs."),
            Property(label="epochs", data_type="number"),
        )

        assert [r.value for r in results] == ["12", "8"]
        assert all(r.confidence == pytest.approx(0.5) for r in results)

    def test_works_on_processed_sections(self):
        """Test extraction from TextProcessor output."""
        sections = TextProcessor().process_sections({
            "results": "Accuracy: 95.3% on the test split. Training took 12 hours.",
        })
        results = DeterministicExtractor().extract(sections, {"label": "accuracy", "dataType": "number"})

        assert results[0].value == "95.3"
        assert results[0].sentence == "Accuracy: 95.3% on the test split."


class TestUrls:
    """Tests for URL extraction."""

    def test_url(self):
        """Test that URLs are extracted at 0.9 without trailing punctuation."""
        results = DeterministicExtractor().extract(
            _sections("Code is available at https://github.com/org/repo."),
            {"label": "code", "dataType": "url"},
        )

        assert len(results) == 1
        assert results[0].value == "https://github.com/org/repo"
        assert results[0].confidence == pytest.approx(0.9)

    def test_doi(self):
        """Test that DOIs are normalized to resolver URLs."""
        results = DeterministicExtractor().extract(
            _sections("See doi:10.1234/abcd.5678 for details."),
            {"label": "paper", "dataType": "url"},
        )

        assert results[0].value == "https://doi.org/10.1234/abcd.5678"
        assert results[0].confidence == pytest.approx(0.9)


class TestDates:
    """Tests for date extraction."""

    def test_iso_date(self):
        """Test that ISO dates are extracted at 0.8."""
        results = DeterministicExtractor().extract(
            _sections("The study was published on 2021-03-15 in a journal."),
            {"label": "published", "dataType": "date"},
        )

        assert results[0].value == "2021-03-15"
        assert results[0].confidence == pytest.approx(0.8)

    def test_month_name_date(self):
        """Test that month-name dates are extracted."""
        results = DeterministicExtractor().extract(
            _sections("Data was collected until March 15, 2021 at two sites."),
            {"label": "collected", "dataType": "date"},
        )

        assert "March 15, 2021" in [r.value for r in results]

    def test_year(self):
        """Test that bare years are extracted."""
        results = DeterministicExtractor().extract(
            _sections("The benchmark was released in 2019 by the authors."),
            {"label": "release", "dataType": "date"},
        )

        assert [r.value for r in results] == ["2019"]


class TestTextAndBoolean:
    """Tests for text and boolean extraction."""

    def test_label_with_delimiter(self):
        """Test text following the label and a delimiter."""
        results = DeterministicExtractor().extract(
            _sections("The dataset: ImageNet with 1M images."),
            {"label": "dataset", "type": "text"},
        )

        assert results[0].value == "ImageNet with 1M images"
        assert results[0].confidence == pytest.approx(0.5)

    def test_label_clause(self):
        """Test that a clause mentioning the label is extracted."""
        results = DeterministicExtractor().extract(
            _sections("We evaluate on the ImageNet dataset for all runs."),
            {"label": "dataset", "dataType": "resource"},
        )

        assert results[0].value == "We evaluate on the ImageNet dataset for all runs"

    def test_boolean(self):
        """Test a yes/no answer following the label."""
        results = DeterministicExtractor().extract(
            _sections("Open source release: yes, under MIT."),
            {"label": "open source", "dataType": "boolean"},
        )

        assert results[0].value == "yes"

    def test_no_match(self):
        """Test that unrelated text yields no candidates."""
        results = DeterministicExtractor().extract(
            _sections("Nothing relevant is mentioned here."),
            {"label": "code", "dataType": "url"},
        )
        assert results == []


class TestLimits:
    """Tests for deduplication and capping."""

    def test_deduplicates_values(self):
        """Test that the same value from two sentences is kept once."""
        results = DeterministicExtractor().extract(
            _sections("Accuracy: 95.3% on test.", "Final accuracy: 95.3% overall."),
            {"label": "accuracy", "dataType": "number"},
        )

        assert [r.value for r in results] == ["95.3"]
        assert results[0].sentence == "Accuracy: 95.3% on test."

    def test_stops_at_cap(self):
        """Test that extraction stops at max_values_per_property."""
        extractor = DeterministicExtractor(ExtractionConfig(max_values_per_property=2))
        results = extractor.extract(
            _sections("Values were 1, 2, 3 and 4 in total."),
            {"label": "count", "dataType": "number"},
        )

        assert [r.value for r in results] == ["1", "2"]

    def test_scans_sections_in_order(self):
        """Test that earlier sections are scanned first."""
        sections = {
            "abstract": {"sentences": ["The code is at https://a.example.org/x."]},
            "results": {"sentences": ["Mirror: https://b.example.org/y."]},
        }
        extractor = DeterministicExtractor(ExtractionConfig(max_values_per_property=1))
        results = extractor.extract(sections, {"label": "code", "dataType": "url"})

        assert [r.value for r in results] == ["https://a.example.org/x"]
        assert results[0].section == "abstract"
