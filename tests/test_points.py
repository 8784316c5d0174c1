# -*- coding: utf-8 -*-
import numpy as np
import pytest

import meshmorph_go as gogo


@pytest.fixture
def points():
    points = gogo.Correspondence()
    points.add(10, 20, 15, 25)
    points.add(30, 40)
    return points


def test_ids_are_handed_out_automatically(points):
    assert [p.id for p in points] == ['point-1', 'point-2']
    assert points.add(1, 2) == 'point-3'
    assert len(points) == 3


def test_target_defaults_to_source(points):
    p = points[1]
    assert (p.target_x, p.target_y) == (30., 40.)


def test_duplicate_id_is_refused(points):
    with pytest.raises(ValueError):
        points.add(0, 0, id='point-1')


def test_explicit_ids_are_not_reused(points):
    points.add(5, 5, id='point-3')
    assert points.add(6, 6) == 'point-4'


def test_move(points):
    points.move('point-1', target=(18, 30))
    points.move('point-2', source=(-5, 500))
    assert points[0] == gogo.FeaturePoint('point-1', 10., 20., 18., 30.)
    assert points[1] == gogo.FeaturePoint('point-2', -5., 500., 30., 40.)


def test_delete(points):
    points.delete('point-1')
    assert [p.id for p in points] == ['point-2']
    with pytest.raises(KeyError):
        points.delete('point-1')
    with pytest.raises(KeyError):
        points.move('ghost', source=(0, 0))


def test_clear(points):
    points.clear()
    assert len(points) == 0
    assert points.nodes().shape == (0, 4)


def test_nodes(points):
    assert np.array_equal(points.nodes(), [[10, 20, 15, 25], [30, 40, 30, 40]])


@pytest.mark.parametrize('thing', [None, [], np.zeros((0, 4))])
def test_nodes_of_nothing(thing):
    assert gogo.nodes_of(thing).shape == (0, 4)


def test_nodes_of_point_list():
    nodes = gogo.nodes_of([gogo.FeaturePoint('a', 1, 2, 3, 4)])
    assert np.array_equal(nodes, [[1, 2, 3, 4]])


def test_points_survive_a_round_trip(points, tmp_path):
    pointsfile = str(tmp_path / 'points.json')
    gogo.save_points(points, pointsfile)
    loaded = gogo.load_points(pointsfile)
    assert list(loaded) == list(points)
    assert loaded.add(0, 0) == 'point-3'


def test_copy_constructor(points):
    twin = gogo.Correspondence(points)
    twin.delete('point-1')
    assert len(points) == 2
    assert len(twin) == 1


def test_nodes_of_plain_rows():
    rows = [[1, 2, 3, 4], (5, 6, 7, 8)]
    assert np.array_equal(gogo.nodes_of(rows), [[1, 2, 3, 4], [5, 6, 7, 8]])
    assert gogo.nodes_of(iter(rows)).shape == (2, 4)


def test_engine_takes_plain_rows(keys):
    engine = gogo.MorphEngine(*keys)
    rows = [[8., 6., 11., 8.], [22., 7., 20., 10.]]
    expected = engine.morph(np.array(rows), 0.4)
    assert np.array_equal(engine.morph(rows, 0.4), expected)
