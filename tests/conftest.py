# -*- coding: utf-8 -*-
"""
Shared test fixtures: small synthetic key frames.
"""
import matplotlib
matplotlib.use('Agg')

import numpy as np
import pytest


def solid(h, w, value):
    """
    Opaque RGBa bitmap of a single grey level.
    """
    M = np.ones((h, w, 4))
    M[:, :, :3] = value
    return M


def noise(h, w, seed):
    """
    Opaque RGBa bitmap with random colours.
    """
    rng = np.random.default_rng(seed)
    M = np.ones((h, w, 4))
    M[:, :, :3] = rng.random((h, w, 3))
    return M


def ramps(h, w):
    """
    Two smooth opaque RGBa bitmaps with different colour gradients.
    """
    X, Y = np.meshgrid(np.arange(w) / float(w), np.arange(h) / float(h))
    Ka = np.ones((h, w, 4))
    Kb = np.ones((h, w, 4))
    Ka[:, :, 0], Ka[:, :, 1], Ka[:, :, 2] = X, Y, 0.5
    Kb[:, :, 0], Kb[:, :, 1], Kb[:, :, 2] = 1 - Y, X, 0.2
    return Ka, Kb


@pytest.fixture
def keys():
    """
    Random source and target, 24 x 32 pixels.
    """
    return noise(24, 32, 1), noise(24, 32, 2)


@pytest.fixture
def smooth_keys():
    return ramps(24, 32)


@pytest.fixture
def nodes():
    """
    A handful of feature point trajectories within a 32 x 24 canvas,
    rows [xs, ys, xt, yt].
    """
    return np.array([[ 8.,  6., 11.,  8.],
                     [22.,  7., 20., 10.],
                     [16., 16., 15., 12.],
                     [ 6., 18.,  9., 17.],
                     [27., 19., 24., 20.]])
