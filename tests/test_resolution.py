import unittest

from helpers import CENTER, make_driver
from ridecloak.service.resolution import count_nearby, resolution_for_density, select_resolution
from ridecloak.service import geo


def crowd(n, lat=CENTER[0], lon=CENTER[1]):
    return [make_driver(f"d-{i}", lat, lon) for i in range(n)]


class TestDensityThresholds(unittest.TestCase):

    def test_exact_boundaries(self):
        cases = {51: 9, 50: 7, 11: 7, 10: 5, 0: 5}
        for density, expected in cases.items():
            self.assertEqual(select_resolution(CENTER, crowd(density)), expected, density)

    def test_threshold_table(self):
        self.assertEqual(resolution_for_density(1000), 9)
        self.assertEqual(resolution_for_density(11), 7)
        self.assertEqual(resolution_for_density(1), 5)

    def test_far_drivers_do_not_count(self):
        drivers = crowd(51, lat=41.0)
        self.assertEqual(select_resolution(CENTER, drivers), 5)

    def test_radius_is_three_grid_steps(self):
        reference = geo.cell_of(CENTER[0], CENTER[1], 9)
        # res-9 cells are ~0.3 km across; 0.02 deg (~2.2 km) is well outside 3 steps
        near = make_driver("near", CENTER[0] + 0.0005, CENTER[1])
        far = make_driver("far", CENTER[0] + 0.02, CENTER[1])
        self.assertEqual(count_nearby(reference, [near, far]), 1)

    def test_drivers_with_other_resolution_cells_are_ignored(self):
        drivers = [make_driver(f"d-{i}", resolution=7) for i in range(60)]
        self.assertEqual(select_resolution(CENTER, drivers), 5)

    def test_reevaluated_per_call(self):
        drivers = crowd(11)
        self.assertEqual(select_resolution(CENTER, drivers), 7)
        self.assertEqual(select_resolution(CENTER, drivers[:3]), 5)


if __name__ == "__main__":
    unittest.main()
