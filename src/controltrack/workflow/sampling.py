# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Attribute sampling: sample size, seeded selection and conclusion mapping.

Sample size uses the zero-expected-deviation reliability factor with a
finite population correction::

    R  = -ln(1 - confidence)
    n0 = R / (tolerable_rate - expected_rate)
    n  = ceil(n0 / (1 + (n0 - 1) / population)), clamped to [1, population]

With the default 11% tolerable rate and 0% expected rate, a population of
247 at 95% confidence gives 25 items.

Every function here is pure. The same seed and population always produce
the same sample.
"""

import hashlib
import math
import random

from beartype import beartype

from ..models.testing import OverallConclusion, SamplingMethod


@beartype
def recommended_sample_size(
    population_size: int,
    confidence_level: float,
    tolerable_exception_rate: float,
    expected_exception_rate: float = 0.0,
) -> int:
    """Recommended number of items to test for the given population and risk."""
    if population_size <= 0:
        raise ValueError("population_size must be positive")
    if not 0.0 < confidence_level < 1.0:
        raise ValueError("confidence_level must be between 0 and 1")
    if not 0.0 <= expected_exception_rate < tolerable_exception_rate < 1.0:
        raise ValueError("expected rate must be below the tolerable rate, both within [0, 1)")

    reliability = -math.log(1.0 - confidence_level)
    n0 = reliability / (tolerable_exception_rate - expected_exception_rate)
    adjusted = n0 / (1.0 + (n0 - 1.0) / population_size)
    return max(1, min(population_size, math.ceil(adjusted)))


@beartype
def derive_seed(assignment_id: str, salt: str) -> str:
    """Sampling seed bound to one assignment, so unrelated audits never share samples."""
    return hashlib.sha256(f"{assignment_id}:{salt}".encode()).hexdigest()[:16]


@beartype
def population_items(population_size: int) -> list[str]:
    """Synthetic item ids used when the population is only known by its size."""
    width = max(5, len(str(population_size)))
    return [f"item-{index:0{width}d}" for index in range(1, population_size + 1)]


@beartype
def draw_sample(
    population: list[str],
    sample_size: int,
    method: SamplingMethod,
    seed: str,
    selected: list[str] | None = None,
) -> list[str]:
    """Select sample items from ``population``.

    ``random`` draws without replacement, ``systematic`` takes every k-th item
    from a seeded start, ``judgmental`` validates and returns ``selected``.
    Random and systematic samples are returned in population order.
    """
    if method == SamplingMethod.JUDGMENTAL:
        return _judgmental(population, selected)

    size = len(population)
    if not 1 <= sample_size <= size:
        raise ValueError(f"sample_size must be between 1 and {size}")
    rng = random.Random(int(seed, 16))

    if method == SamplingMethod.RANDOM:
        indices = sorted(rng.sample(range(size), sample_size))
    else:
        interval = size / sample_size
        start = rng.random() * interval
        indices = [min(size - 1, int(start + step * interval)) for step in range(sample_size)]
    return [population[index] for index in indices]


def _judgmental(population: list[str], selected: list[str] | None) -> list[str]:
    if not selected:
        raise ValueError("judgmental sampling requires explicit item ids")
    if len(set(selected)) != len(selected):
        raise ValueError("judgmental sample contains duplicate item ids")
    known = set(population)
    unknown = [item for item in selected if item not in known]
    if unknown:
        raise ValueError(f"items not in population: {', '.join(unknown[:5])}")
    return list(selected)


@beartype
def derive_conclusion(
    exception_rate: float,
    any_catastrophic: bool,
    significant_deficiency_threshold: float,
) -> OverallConclusion:
    """Map a tested exception rate onto the overall control conclusion.

    0 -> effective; up to and including the threshold -> deficiency; above it
    -> significant deficiency. A catastrophic item is a material weakness
    whatever the rate.
    """
    if any_catastrophic:
        return OverallConclusion.MATERIAL_WEAKNESS
    if exception_rate == 0.0:
        return OverallConclusion.EFFECTIVE
    if exception_rate <= significant_deficiency_threshold:
        return OverallConclusion.DEFICIENCY
    return OverallConclusion.SIGNIFICANT_DEFICIENCY
