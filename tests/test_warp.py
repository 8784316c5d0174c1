# -*- coding: utf-8 -*-
import numpy as np
import pytest

import meshmorph_algo as algo
from conftest import noise


def test_affine_maps_vertices_onto_vertices():
    src = np.array([[0., 0.], [10., 0.], [0., 5.]])
    dst = np.array([[3., 1.], [8., 4.], [2., 9.]])
    A = algo.affine(src, dst)
    x, y = algo.apply_affine(A, src[:, 0], src[:, 1])
    assert np.allclose(x, dst[:, 0])
    assert np.allclose(y, dst[:, 1])


def test_affine_coefficient_layout():
    # Pure translation by (5, -2) and scaling x by two
    src = np.array([[0., 0.], [1., 0.], [0., 1.]])
    dst = np.array([[5., -2.], [7., -2.], [5., -1.]])
    a, b, c, d, e, f = algo.affine(src, dst)
    assert (a, b, c, d) == pytest.approx((2, 0, 0, 1))
    assert (e, f) == pytest.approx((5, -2))


def test_affine_of_degenerate_triangle_is_none():
    src = np.array([[0., 0.], [1., 1.], [2., 2.]])
    dst = np.array([[0., 0.], [1., 0.], [0., 1.]])
    assert algo.affine(src, dst) is None


def test_invert_affine_undoes_affine():
    src = np.array([[1., 2.], [9., 3.], [4., 8.]])
    dst = np.array([[0., 0.], [7., 1.], [2., 6.]])
    A = algo.affine(src, dst)
    B = algo.invert_affine(A)
    x, y = algo.apply_affine(B, *algo.apply_affine(A, 3.5, 4.25))
    assert (x, y) == pytest.approx((3.5, 4.25))
    assert algo.invert_affine((1, 2, 2, 4, 0, 0)) is None


def test_inside_triangle_is_inclusive_and_clipped():
    tri = np.array([[0., 0.], [4., 0.], [0., 4.]])
    rows, cols = algo.inside_triangle(tri, 10, 10)
    pixels = set(zip(rows, cols))
    assert (0, 0) in pixels and (0, 4) in pixels and (4, 0) in pixels
    assert (2, 2) in pixels
    assert not (3, 2) in pixels
    assert len(pixels) == 15

    rows, cols = algo.inside_triangle(tri - 2, 10, 10)
    assert rows.min() >= 0 and cols.min() >= 0


def test_inside_triangle_beyond_canvas_is_empty():
    tri = np.array([[20., 20.], [30., 20.], [20., 30.]])
    rows, cols = algo.inside_triangle(tri, 10, 10)
    assert len(rows) == 0 and len(cols) == 0


def test_split_square_covers_every_pixel_once_or_more():
    h, w = 7, 9
    square = np.array([[0., 0.], [w, 0.], [w, h], [0., h]])
    covered = np.zeros((h, w), dtype=bool)
    for tri in (square[[0, 1, 2]], square[[0, 2, 3]]):
        rows, cols = algo.inside_triangle(tri, h, w)
        covered[rows, cols] = True
    assert covered.all()


def test_sample_is_bilinear_and_clamped():
    M = np.zeros((2, 2, 1))
    M[0, 1, 0] = 1.
    S = algo.sample(M, np.array([0.5, 5., -3.]), np.array([0., 0., 0.]))
    assert S[:, 0] == pytest.approx([0.5, 1., 0.])


def test_warp_triangle_skips_degenerate_triangles():
    Ka, Kb = noise(8, 8, 1), noise(8, 8, 2)
    W = np.zeros_like(Ka)
    flat = np.array([[0., 0.], [4., 4.], [8., 8.]])
    good = np.array([[0., 0.], [8., 0.], [0., 8.]])
    assert not algo.warp_triangle(W, Ka, Kb, good, good, flat, 0.5)
    assert not algo.warp_triangle(W, Ka, Kb, flat, good, good, 0.5)
    assert np.all(W == 0)


def test_warp_triangle_ignores_key_with_zero_weight():
    Ka, Kb = noise(8, 8, 1), noise(8, 8, 2)
    W = np.zeros_like(Ka)
    flat = np.array([[0., 0.], [4., 4.], [8., 8.]])
    good = np.array([[0., 0.], [8., 0.], [0., 8.]])
    assert algo.warp_triangle(W, Ka, Kb, good, flat, good, 0.)
    rows, cols = algo.inside_triangle(good, 8, 8)
    assert np.allclose(W[rows, cols], Ka[rows, cols])


def test_tween_with_static_nodes_equals_cross_dissolve():
    Ka, Kb = noise(12, 16, 3), noise(12, 16, 4)
    nodes = algo.augment([[8., 6., 8., 6.]], 12, 16)
    T = algo.tween(Ka, Kb, nodes, 0.3)
    assert np.allclose(T, algo.cross_dissolve(Ka, Kb, 0.3), atol=1e-9)


def test_tween_paints_on_given_canvas():
    Ka, Kb = noise(6, 6, 5), noise(6, 6, 6)
    W = np.full_like(Ka, 7.)
    T = algo.tween(Ka, Kb, algo.anchors(6, 6), 0., W=W)
    assert T is W
    assert np.allclose(W, Ka)


def test_cross_dissolve_halfway():
    Ka, Kb = np.zeros((2, 2, 4)), np.ones((2, 2, 4))
    assert np.allclose(algo.cross_dissolve(Ka, Kb, 0.5), 0.5)
    assert np.allclose(algo.cross_dissolve(Ka, Kb, 3.), 1.)


def test_stretch_bitmap_ignores_aspect_ratio():
    M = noise(10, 20, 7)
    S = algo.stretch_bitmap(M, 30, 15)
    assert S.shape == (30, 15, 4)
    assert S.min() >= 0 and S.max() <= 1
    assert algo.stretch_bitmap(M, 10, 20) is M


def test_quantize_and_flatten():
    M = np.zeros((1, 2, 4))
    M[0, 0] = [1., 1., 1., 1.]
    M[0, 1] = [1., 1., 1., 0.]
    F = algo.flatten_bitmap(M, (0, 0, 255))
    Q = algo.quantize_bitmap(F)
    assert Q.dtype == np.uint8
    assert list(Q[0, 0]) == [255, 255, 255, 255]
    assert list(Q[0, 1]) == [0, 0, 255, 255]


def test_rgba_promotes_grey_and_rgb():
    grey = np.full((3, 4), 128, dtype=np.uint8)
    M = algo.rgba(grey)
    assert M.shape == (3, 4, 4)
    assert M[0, 0, 0] == pytest.approx(128 / 255.)
    assert M[0, 0, 3] == 1
    assert algo.rgba(np.zeros((3, 4, 3))).shape == (3, 4, 4)


def test_difference():
    assert algo.difference(np.zeros((2, 2, 4)), np.ones((2, 2, 4))) == 1


def test_composite_half_transparent_over_opaque():
    A = np.zeros((1, 1, 4))
    A[0, 0] = [1., 0., 0., .5]
    B = np.zeros((1, 1, 4))
    B[0, 0] = [0., 0., 1., 1.]
    M = algo.composite_bitmaps(A, B)
    assert np.allclose(M[0, 0], [.5, 0., .5, 1.])


def test_save_jpg_drops_alpha(tmp_path):
    M = noise(8, 8, 3)
    M[:, :, 3] = 0
    f = str(tmp_path / 'flat.jpg')
    algo.save_rgba(M, f, backcolor=(0, 255, 0))
    K = algo.load_rgba(f)
    assert K.shape == (8, 8, 4)
    assert np.all(K[:, :, 3] == 1)
    assert K[:, :, 1].mean() > 0.9


def test_quantize_leaves_bytes_alone():
    Q = np.arange(16, dtype=np.uint8).reshape(2, 2, 4)
    assert algo.quantize_bitmap(Q) is Q


def test_save_jpg_from_bytes(tmp_path):
    Q = np.zeros((8, 8, 4), dtype=np.uint8)
    Q[:, :, 0] = 255
    Q[:, :, 3] = 255
    f = str(tmp_path / 'red.jpg')
    algo.save_rgba(Q, f)
    K = algo.load_rgba(f)
    assert K[:, :, 0].mean() > 0.9
    assert K[:, :, 1].mean() < 0.1
