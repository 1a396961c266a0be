from bizcontacts.services.geo_grid import GridPoint, generate_grid_points, haversine_km


def test_zero_radius_is_just_the_center():
    assert generate_grid_points(37.98, 23.73, 0) == [GridPoint(37.98, 23.73)]


def test_points_stay_inside_radius_center_first():
    points = generate_grid_points(37.98, 23.73, 5, grid_radius_km=1.5, density=1.5)

    assert points[0] == GridPoint(37.98, 23.73)
    distances = [haversine_km(37.98, 23.73, p.latitude, p.longitude) for p in points]
    assert all(d <= 5 for d in distances)
    assert distances == sorted(distances)
    assert len(points) == len(set(points))


def test_higher_density_means_more_points():
    sparse = generate_grid_points(40.64, 22.94, 4, density=1)
    dense = generate_grid_points(40.64, 22.94, 4, density=2)
    assert len(dense) > len(sparse)
