"""
Tests for neighborhood kernels
"""

import pytest
import numpy as np
from supersom.config import Neighborhood
from supersom.neighborhood import bubble, gaussian, get_neighborhood_function, with_cutoff


@pytest.mark.unit
class TestKernels:
    """Test influence values"""

    @pytest.mark.unit
    @pytest.mark.parametrize("kind", list(Neighborhood))
    @pytest.mark.parametrize("radius", [0.01, 0.5, 1.0, 3.7, 100.0])
    def test_full_influence_at_zero_distance(self, kind, radius):
        kernel = get_neighborhood_function(kind)
        assert kernel(np.array([0.0]), radius)[0] == 1.0

    @pytest.mark.unit
    @pytest.mark.parametrize("kind", list(Neighborhood))
    def test_non_increasing_in_distance(self, kind):
        kernel = get_neighborhood_function(kind)
        distances = np.linspace(0, 10, 101)
        influence = kernel(distances, 2.5)

        assert np.all(np.diff(influence) <= 0)
        assert np.all((influence >= 0) & (influence <= 1))

    @pytest.mark.unit
    def test_gaussian_values(self):
        influence = gaussian(np.array([1.0, 2.0]), 1.0)
        np.testing.assert_array_almost_equal(influence, [np.exp(-0.5), np.exp(-2.0)])

    @pytest.mark.unit
    def test_bubble_values(self):
        influence = bubble(np.array([0.0, 1.0, 1.5, 2.0]), 1.5)
        np.testing.assert_array_equal(influence, [1.0, 1.0, 1.0, 0.0])

    @pytest.mark.unit
    @pytest.mark.parametrize("kernel", [gaussian, bubble])
    def test_zero_radius_updates_only_center(self, kernel):
        influence = kernel(np.array([0.0, 1.0, 1.4142]), 0.0)
        np.testing.assert_array_equal(influence, [1.0, 0.0, 0.0])

    @pytest.mark.unit
    def test_tiny_radius_does_not_divide_by_zero(self):
        influence = gaussian(np.array([0.0, 1.0]), 1e-200)
        np.testing.assert_array_equal(influence, [1.0, 0.0])


@pytest.mark.unit
class TestCutoff:
    """Test windowed kernels"""

    @pytest.mark.unit
    def test_influence_zero_beyond_cutoff(self):
        kernel = with_cutoff(gaussian, 2.0)
        influence = kernel(np.array([0.0, 1.0, 2.0, 2.1]), 1.0)

        assert influence[0] == 1.0
        assert influence[2] == pytest.approx(np.exp(-2.0))
        assert influence[3] == 0.0
