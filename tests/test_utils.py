import math
import random

import numpy as np
import pytest

from utils import (
    City,
    ConvergenceTracker,
    EARTH_RADIUS_MILES,
    distance,
    generate_simulated_cities,
    haversine_miles,
    load_real_cities,
    pairwise_distance_matrix,
    random_permutation,
    route_length,
    score,
)


NYC = City("New York", 40.7128, -74.0060)
LA = City("Los Angeles", 34.0522, -118.2437)
CHI = City("Chicago", 41.8781, -87.6298)


def test_distance_to_self_is_zero():
    assert distance(NYC, NYC) == 0.0


def test_distance_is_symmetric():
    assert distance(NYC, LA) == pytest.approx(distance(LA, NYC))


def test_one_degree_of_latitude():
    d = haversine_miles(0.0, 0.0, 1.0, 0.0)
    assert d == pytest.approx(EARTH_RADIUS_MILES * math.pi / 180.0)


def test_new_york_to_los_angeles():
    # roughly 2445 miles great-circle
    assert 2400 < distance(NYC, LA) < 2500


def test_score_is_open_path():
    cities = [NYC, CHI, LA]
    expected = distance(NYC, CHI) + distance(CHI, LA)
    assert score([0, 1, 2], cities) == pytest.approx(expected)
    closed = expected + distance(LA, NYC)
    assert score([0, 1, 2], cities) < closed


def test_score_trivial_tours():
    assert score([0], [NYC]) == 0.0
    assert score([], []) == 0.0


def test_matrix_is_symmetric_with_zero_diagonal():
    D = pairwise_distance_matrix([NYC, CHI, LA])
    assert D.shape == (3, 3)
    assert np.allclose(D, D.T)
    assert np.all(np.diag(D) == 0.0)


def test_route_length_matches_score():
    cities = generate_simulated_cities(12, seed=3)
    D = pairwise_distance_matrix(cities)
    tour = list(range(12))
    random.Random(1).shuffle(tour)
    assert route_length(tour, D) == pytest.approx(score(tour, cities))


def test_random_permutation_is_valid_and_seeded():
    perm = random_permutation(25, random.Random(7))
    assert sorted(perm) == list(range(25))
    assert perm == random_permutation(25, random.Random(7))


def test_convergence_tracker_records_improvements():
    tracker = ConvergenceTracker()
    tracker.update(0, 10.0)
    tracker.update(1, 8.0)
    tracker.update(2, 8.0)
    assert tracker.history == [(0, 10.0), (1, 8.0), (2, 8.0)]
    assert tracker.best_iter == 1
    assert tracker.time_convergence_iter == 2


def test_load_real_cities(tmp_path):
    path = tmp_path / "graph.txt"
    path.write_text("New York,40.7128,-74.0060\nChicago, 41.8781, -87.6298\n")
    cities = load_real_cities(path)
    assert cities == [City("New York", 40.7128, -74.0060), City("Chicago", 41.8781, -87.6298)]


def test_load_real_cities_with_header_and_limit(tmp_path):
    path = tmp_path / "cities.csv"
    path.write_text("name,lat,lon\nA,1.0,2.0\nB,3.0,4.0\nC,5.0,6.0\n")
    cities = load_real_cities(path, max_n=2, has_header=True)
    assert [c.name for c in cities] == ["A", "B"]


def test_load_real_cities_keeps_names_that_look_missing(tmp_path):
    path = tmp_path / "graph.txt"
    path.write_text("NA,1.0,2.0\nNone,3.0,4.0\nnull,5.0,6.0\nNaN,7.0,8.0\n")
    cities = load_real_cities(path)
    assert [c.name for c in cities] == ["NA", "None", "null", "NaN"]
    assert cities[0] == City("NA", 1.0, 2.0)


@pytest.mark.parametrize("body", [
    "A,1.0,2.0\nB,north,4.0\n",
    "A,1.0,2.0\nB,3.0\n",
    "A,1.0,2.0\nB,3.0,4.0,5.0\n",
    "A,1.0\n",
    "A,1.0,inf\n",
    "A,,2.0\n",
])
def test_load_real_cities_rejects_malformed_records(tmp_path, body):
    path = tmp_path / "bad.txt"
    path.write_text(body)
    with pytest.raises(ValueError):
        load_real_cities(path)


def test_generate_simulated_cities_is_reproducible():
    a = generate_simulated_cities(5, seed=11)
    b = generate_simulated_cities(5, seed=11)
    assert a == b
    assert all(25.0 <= c.lat <= 49.0 and -124.0 <= c.lon <= -67.0 for c in a)
