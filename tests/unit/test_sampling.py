"""Unit tests for attribute sampling."""

import pytest

from controltrack.core.config import WorkflowSettings
from controltrack.models import OverallConclusion, SamplingMethod
from controltrack.workflow.sampling import (
    derive_conclusion,
    derive_seed,
    draw_sample,
    population_items,
    recommended_sample_size,
)


class TestRecommendedSampleSize:
    """Test sample size calculation."""

    def test_reference_population(self) -> None:
        """Test 247 items at 95% confidence need 25 samples."""
        assert recommended_sample_size(247, 0.95, 0.11, 0.0) == 25

    def test_default_settings_size_the_reference_population(self) -> None:
        """Test the default rates give 25 items for 247, where a 10% tolerable rate gives 27."""
        settings = WorkflowSettings()
        size = recommended_sample_size(
            247,
            settings.default_confidence_level,
            settings.tolerable_exception_rate,
            settings.expected_exception_rate,
        )

        assert size == 25
        assert recommended_sample_size(247, 0.95, 0.10, 0.0) == 27
        assert (
            derive_conclusion(3 / size, False, settings.significant_deficiency_threshold)
            == OverallConclusion.DEFICIENCY
        )

    def test_higher_confidence_needs_more_items(self) -> None:
        """Test the sample grows with confidence."""
        assert recommended_sample_size(247, 0.99, 0.11) > recommended_sample_size(247, 0.90, 0.11)

    def test_small_population_is_tested_in_full(self) -> None:
        """Test the sample never exceeds the population."""
        assert recommended_sample_size(5, 0.95, 0.11) == 5
        assert recommended_sample_size(1, 0.95, 0.11) == 1

    def test_expected_exceptions_raise_the_sample(self) -> None:
        """Test a non-zero expected rate needs a larger sample."""
        assert recommended_sample_size(1000, 0.95, 0.11, 0.02) > recommended_sample_size(
            1000, 0.95, 0.11, 0.0
        )

    @pytest.mark.parametrize(
        ("population", "confidence", "tolerable", "expected"),
        [
            (0, 0.95, 0.11, 0.0),
            (100, 1.0, 0.11, 0.0),
            (100, 0.95, 0.05, 0.05),
            (100, 0.95, 0.11, 0.2),
        ],
    )
    def test_invalid_parameters(
        self, population: int, confidence: float, tolerable: float, expected: float
    ) -> None:
        """Test impossible designs are rejected."""
        with pytest.raises(ValueError):
            recommended_sample_size(population, confidence, tolerable, expected)


class TestDrawSample:
    """Test seeded sample selection."""

    def test_population_items_are_zero_padded(self) -> None:
        """Test synthetic item ids."""
        items = population_items(247)
        assert len(items) == 247
        assert items[0] == "item-00001"
        assert items[-1] == "item-00247"

    def test_random_sample_is_reproducible(self) -> None:
        """Test the same seed yields the same sample."""
        population = population_items(247)
        seed = derive_seed("asg-1", "tex-1")

        first = draw_sample(population, 25, SamplingMethod.RANDOM, seed)
        second = draw_sample(population, 25, SamplingMethod.RANDOM, seed)

        assert first == second
        assert len(set(first)) == 25
        assert first == sorted(first, key=population.index)

    def test_different_assignments_get_different_samples(self) -> None:
        """Test the seed is bound to the assignment."""
        population = population_items(247)
        one = draw_sample(population, 25, SamplingMethod.RANDOM, derive_seed("asg-1", "tex-1"))
        other = draw_sample(population, 25, SamplingMethod.RANDOM, derive_seed("asg-2", "tex-1"))
        assert one != other

    def test_systematic_sample_is_evenly_spaced(self) -> None:
        """Test systematic selection takes one item per interval."""
        population = population_items(100)
        sample = draw_sample(population, 10, SamplingMethod.SYSTEMATIC, derive_seed("a", "b"))

        positions = [population.index(item) for item in sample]
        assert len(sample) == 10
        assert all(10 * step <= pos < 10 * (step + 1) for step, pos in enumerate(positions))

    def test_judgmental_sample_returns_selection(self) -> None:
        """Test judgmental sampling keeps the chosen items as given."""
        population = population_items(50)
        chosen = ["item-00007", "item-00003"]
        assert draw_sample(population, 2, SamplingMethod.JUDGMENTAL, "0", chosen) == chosen

    @pytest.mark.parametrize(
        "selected",
        [None, [], ["item-00001", "item-00001"], ["item-99999"]],
    )
    def test_judgmental_sample_validation(self, selected: list[str] | None) -> None:
        """Test missing, duplicate or unknown judgmental items are rejected."""
        with pytest.raises(ValueError):
            draw_sample(population_items(50), 2, SamplingMethod.JUDGMENTAL, "0", selected)

    def test_sample_larger_than_population_is_rejected(self) -> None:
        """Test random sampling cannot exceed the population."""
        with pytest.raises(ValueError):
            draw_sample(population_items(5), 6, SamplingMethod.RANDOM, "ff")


class TestDeriveConclusion:
    """Test mapping exception rates to conclusions."""

    def test_no_exceptions_is_effective(self) -> None:
        assert derive_conclusion(0.0, False, 0.20) == OverallConclusion.EFFECTIVE

    def test_rate_up_to_threshold_is_deficiency(self) -> None:
        """Test 3 of 25 and the threshold itself are deficiencies."""
        assert derive_conclusion(3 / 25, False, 0.20) == OverallConclusion.DEFICIENCY
        assert derive_conclusion(0.20, False, 0.20) == OverallConclusion.DEFICIENCY

    def test_rate_above_threshold_is_significant(self) -> None:
        assert derive_conclusion(0.24, False, 0.20) == OverallConclusion.SIGNIFICANT_DEFICIENCY

    def test_catastrophic_item_is_material_weakness(self) -> None:
        """Test a catastrophic exception overrides the rate."""
        assert derive_conclusion(1 / 25, True, 0.20) == OverallConclusion.MATERIAL_WEAKNESS
