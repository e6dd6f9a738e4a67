import pytest
import shapely.geometry

from reagg.records import SourceRecord, TargetRecord


def square_grid(n, size=1., origin=(0., 0.)):
    x0, y0 = origin
    return [
        TargetRecord(
            f'{i}_{j}',
            shapely.geometry.box(x0 + i * size, y0 + j * size, x0 + (i + 1) * size, y0 + (j + 1) * size),
        )
        for i in range(n)
        for j in range(n)
    ]


@pytest.fixture
def four_by_four():
    return square_grid(4)


@pytest.fixture
def example_sources():
    # two unit-height strips of area 10 side by side
    return [
        SourceRecord('A', shapely.geometry.box(0, 0, 10, 1), {'pm25': 5., 'pop': 100.}),
        SourceRecord('B', shapely.geometry.box(10, 0, 20, 1), {'pm25': 3., 'pop': 50.}),
    ]


@pytest.fixture
def example_target():
    # overlaps A with area 4 and B with area 6
    return TargetRecord('T', shapely.geometry.box(6, 0, 16, 1))
