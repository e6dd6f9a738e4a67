import random

import pytest
import shapely.geometry

from reagg.errors import DegenerateGeometry, InvalidWeightingPolicy, MissingField, PhaseError
from reagg.index import TargetIndex
from reagg.interpolate import Interpolator, interpolate, transfer_table
from reagg.policy import AREA_MODE, WeightingPolicy
from reagg.records import SourceRecord, TargetRecord

from conftest import square_grid


def test_example_scenario(example_sources, example_target):
    report = interpolate(example_sources, [example_target], WeightingPolicy({'pm25': 'pop'}))
    assert example_target.fields['pop'] == pytest.approx(70)
    assert example_target.fields['pm25'] == pytest.approx(650 / 70)
    assert report.n_sources == 2
    assert report.n_overlaps == 2
    assert not report.undefined


def test_example_scenario_area_weighted(example_sources, example_target):
    interpolate(example_sources, [example_target], WeightingPolicy({'pm25': 'pop'}, mode=AREA_MODE))
    assert example_target.fields['pop'] == pytest.approx(70)
    assert example_target.fields['pm25'] == pytest.approx((5 * 40 + 3 * 30) / 70)


def test_raw_sum_before_normalization(example_sources, example_target):
    engine = Interpolator(WeightingPolicy({'pm25': 'pop'}))
    engine.accumulate(example_sources, TargetIndex([example_target]))
    assert example_target.fields['pm25'] == pytest.approx(650)
    engine.normalize()
    assert example_target.fields['pm25'] == pytest.approx(650 / 70)


@pytest.mark.parametrize('geometry', [
    shapely.geometry.box(0, 0, 2, 2),
    shapely.geometry.box(.5, .5, 2.5, 2.5),
    shapely.geometry.Polygon([(.2, .3), (3.7, .1), (1.9, 3.8)]),
])
def test_extensive_field_conserved(four_by_four, geometry):
    interpolate([SourceRecord('s', geometry, {'emis': 8.})], four_by_four)
    assert sum(target.fields['emis'] for target in four_by_four) == pytest.approx(8.)


def test_extensive_field_split_by_area(four_by_four):
    interpolate([SourceRecord('s', shapely.geometry.box(0, 0, 2, 2), {'emis': 8.})], four_by_four)
    values = {target.id: target.fields['emis'] for target in four_by_four}
    for target_id in ['0_0', '0_1', '1_0', '1_1']:
        assert values[target_id] == pytest.approx(2.)
    assert values['3_3'] == 0


def test_zero_overlap_leaves_targets_unchanged(four_by_four):
    far = SourceRecord('far', shapely.geometry.box(100, 100, 101, 101), {'emis': 5., 'pop': 3.})
    report = interpolate([far], four_by_four)
    assert all(target.fields == {'emis': 0., 'pop': 0.} for target in four_by_four)
    assert report.n_overlaps == 0


def test_envelope_hit_without_intersection_skipped():
    triangle = SourceRecord('tri', shapely.geometry.Polygon([(0, 0), (2, 0), (0, 2)]), {'emis': 1.})
    corner = TargetRecord('corner', shapely.geometry.box(1.6, 1.6, 2, 2))
    report = interpolate([triangle], [corner])
    assert corner.fields['emis'] == 0
    assert report.n_overlaps == 0


def test_order_independence():
    rnd = random.Random(1711)
    sources = [
        SourceRecord(
            i,
            shapely.geometry.box(x, y, x + rnd.uniform(.3, 2), y + rnd.uniform(.3, 2)),
            {'emis': rnd.uniform(0, 10), 'conc': rnd.uniform(0, 5), 'pop': rnd.uniform(1, 100)},
        )
        for i, (x, y) in enumerate((rnd.uniform(0, 3), rnd.uniform(0, 3)) for _ in range(30))
    ]
    policy = WeightingPolicy({'conc': 'pop'})
    forward = square_grid(5)
    interpolate(sources, forward, policy)
    shuffled_sources = sources[:]
    rnd.shuffle(shuffled_sources)
    shuffled = square_grid(5)
    rnd.shuffle(shuffled)
    interpolate(shuffled_sources, shuffled, policy)
    shuffled_by_id = {target.id: target for target in shuffled}
    for target in forward:
        for field, value in target.fields.items():
            assert shuffled_by_id[target.id].fields[field] == pytest.approx(value)


def test_weighted_average_identity():
    source = SourceRecord('s', shapely.geometry.box(1, 1, 2, 2), {'conc': 7.25, 'pop': 40.})
    target = TargetRecord('t', shapely.geometry.box(0, 0, 4, 4))
    interpolate([source], [target], WeightingPolicy({'conc': 'pop'}))
    assert target.fields['conc'] == 7.25
    assert target.fields['pop'] == 40.


def test_weighted_average_identity_partial_overlap_area_weighted():
    source = SourceRecord('s', shapely.geometry.box(0, 0, 3, 3), {'conc': 7.25, 'pop': 40.})
    target = TargetRecord('t', shapely.geometry.box(2, 2, 5, 5))
    interpolate([source], [target], WeightingPolicy({'conc': 'pop'}, mode=AREA_MODE))
    assert target.fields['conc'] == pytest.approx(7.25)


def test_zero_denominator_gives_nodata(four_by_four):
    source = SourceRecord('s', shapely.geometry.box(0, 0, 1, 1), {'conc': 3., 'pop': 10.})
    report = interpolate([source], four_by_four, WeightingPolicy({'conc': 'pop'}, nodata=-1.))
    values = {target.id: target.fields['conc'] for target in four_by_four}
    assert values['0_0'] == pytest.approx(3.)
    assert all(value == -1. for target_id, value in values.items() if target_id != '0_0')
    assert len(report.undefined) == 15
    assert {problem.target_id for problem in report.undefined} == set(values) - {'0_0'}
    assert all(problem.denominator == 'pop' for problem in report.undefined)


def test_zero_population_source_gives_nodata():
    source = SourceRecord('s', shapely.geometry.box(0, 0, 1, 1), {'conc': 3., 'pop': 0.})
    target = TargetRecord('t', shapely.geometry.box(0, 0, 1, 1))
    report = interpolate([source], [target], WeightingPolicy({'conc': 'pop'}))
    assert target.fields['conc'] == WeightingPolicy().nodata
    assert target.fields['pop'] == 0.
    assert report.undefined[0].field == 'conc'


def test_degenerate_source_aborts_before_accumulation(four_by_four):
    sources = [
        SourceRecord('ok', shapely.geometry.box(0, 0, 1, 1), {'emis': 1.}),
        SourceRecord('flat', shapely.geometry.Polygon([(0, 0), (1, 0), (2, 0)]), {'emis': 1.}),
    ]
    with pytest.raises(DegenerateGeometry) as excinfo:
        interpolate(sources, four_by_four)
    assert excinfo.value.record_id == 'flat'
    assert all(target.fields == {} for target in four_by_four)


def test_missing_field_raises(four_by_four):
    sources = [
        SourceRecord('full', shapely.geometry.box(0, 0, 1, 1), {'conc': 1., 'pop': 2.}),
        SourceRecord('partial', shapely.geometry.box(1, 1, 2, 2), {'conc': 1.}),
    ]
    with pytest.raises(MissingField) as excinfo:
        interpolate(sources, four_by_four, WeightingPolicy({'conc': 'pop'}))
    assert excinfo.value.record_id == 'partial'
    assert excinfo.value.field == 'pop'
    assert all(target.fields == {} for target in four_by_four)


@pytest.mark.parametrize('workers', [1, 3])
def test_missing_field_skipped(four_by_four, workers):
    sources = [
        SourceRecord('full', shapely.geometry.box(0, 0, 1, 1), {'conc': 1., 'pop': 2.}),
        SourceRecord('partial', shapely.geometry.box(1, 1, 2, 2), {'conc': 1.}),
    ]
    report = interpolate(
        sources, four_by_four, WeightingPolicy({'conc': 'pop'}, missing='skip'), workers=workers
    )
    assert [problem.record_id for problem in report.skipped] == ['partial']
    assert report.n_sources == 1
    values = {target.id: target.fields for target in four_by_four}
    assert values['0_0']['pop'] == pytest.approx(2.)
    assert values['1_1']['conc'] == WeightingPolicy().nodata


def test_policy_validated_before_accumulation(four_by_four):
    source = SourceRecord('s', shapely.geometry.box(0, 0, 1, 1), {'conc': 1., 'emis': 2.})
    with pytest.raises(InvalidWeightingPolicy):
        interpolate([source], four_by_four, WeightingPolicy({'conc': 'pop'}))
    assert all(target.fields == {} for target in four_by_four)


def test_parallel_matches_sequential():
    rnd = random.Random(42)
    sources = [
        SourceRecord(
            i,
            shapely.geometry.Point(rnd.uniform(0, 6), rnd.uniform(0, 6)).buffer(rnd.uniform(.2, 1.5)),
            {'emis': rnd.uniform(0, 10), 'conc': rnd.uniform(0, 5), 'pop': rnd.uniform(1, 100)},
        )
        for i in range(50)
    ]
    policy = WeightingPolicy({'conc': 'pop'})
    sequential = square_grid(6)
    parallel = square_grid(6)
    interpolate(sources, sequential, policy)
    interpolate(sources, parallel, policy, workers=4)
    assert [target.fields for target in sequential] == [target.fields for target in parallel]


def test_phases_strictly_ordered(example_sources, example_target):
    engine = Interpolator(WeightingPolicy({'pm25': 'pop'}))
    index = TargetIndex([example_target])
    with pytest.raises(PhaseError):
        engine.normalize()
    engine.accumulate(example_sources[:1], index)
    engine.accumulate(example_sources[1:], index)
    engine.normalize()
    assert example_target.fields['pm25'] == pytest.approx(650 / 70)
    with pytest.raises(PhaseError):
        engine.normalize()
    with pytest.raises(PhaseError):
        engine.accumulate(example_sources, index)


def test_invalid_worker_count():
    with pytest.raises(ValueError):
        Interpolator(WeightingPolicy(), workers=0)


def test_transfer_table(four_by_four):
    sources = [
        SourceRecord('a', shapely.geometry.box(0, 0, 2, 1), {}),
        SourceRecord('b', shapely.geometry.box(2.5, 2.5, 3.5, 3.5), {}),
    ]
    table = transfer_table(sources, four_by_four)
    assert list(table.columns) == ['source_id', 'target_id', 'weight']
    assert table.groupby('source_id')['weight'].sum().tolist() == pytest.approx([1., 1.])
    a_rows = table[table['source_id'] == 'a']
    assert a_rows['target_id'].tolist() == ['0_0', '1_0']
    assert a_rows['weight'].tolist() == pytest.approx([.5, .5])
    assert len(table[table['source_id'] == 'b'].index) == 4


def test_transfer_table_matches_extensive_interpolation(four_by_four):
    source = SourceRecord('s', shapely.geometry.box(.5, .5, 2.5, 1.5), {'emis': 12.})
    table = transfer_table([source], four_by_four).set_index('target_id')
    interpolate([source], four_by_four)
    for target in four_by_four:
        expected = 12. * table['weight'].get(target.id, 0.)
        assert target.fields['emis'] == pytest.approx(expected)
