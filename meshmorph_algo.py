#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
A jolly collection of assist functions & algorithms for image morphing;
loading and saving bitmaps, easing profiles, Delaunay triangulation,
per-triangle affine transforms, piecewise affine warping and cross-dissolving.

Spatially warped cross-dissolving for the masses!

Usage
-----
Recommended import convention
>>> import meshmorph_algo as algo

See also
--------
This module offers the fundamental building blocks for all required steps.
For convenience functions and logistics see *meshmorph_go*.

Notes
-----
Bitmaps are floating point RGBa arrays M[y, x, c] with values between 0 - 1.
Pixel M[row, col] lives at coordinate (x=col, y=row).

https://en.wikipedia.org/wiki/Morphing
https://en.wikipedia.org/wiki/Bowyer%E2%80%93Watson_algorithm
"""

# Project meta info
# (For documentation, logging, splash screens, and so forth)
__author__   = 'MeshMorph developers'
__version__  = '1.0 Brave Badger'
__revision__ = '2026-Oct'

# Dependencies
import numpy as np
import bottleneck as bn
from os import path
from collections import Counter
from PIL import Image
from skimage.transform import resize
from scipy.ndimage import map_coordinates
import matplotlib.pyplot as plt

# One-liners
# - Is a variable an array (bitmap or vector)?
isarray = lambda x: type(x) == type(np.array([[0]]))

# Supported easing profiles for the morph transition
transitions = ('linear', 'ease-in', 'ease-out', 'ease-in-out')

# Two points closer than this (in pixels, per axis) are one and the same
EPS_POINT = 1e-4

# Triangles with twice the area below this (in square pixels) are degenerate
EPS_AREA = 1e-4

# Symbolic vertex of the super triangle, which lies infinitely far away
SUPER = -1


def ease(t, flavor='linear'):
    """
    Morph progress as a function of relative time.

    Usage
    -----
    >>> d = ease(t, flavor)

    Parameters
    ----------
    t : float or array
        Relative time that has passed between source and target,
        subject to 0 <= t <= 1.
    flavor : str, optional
        The kind of transition. Options:
            - linear. Constant pace. d = t.
            - ease-in. Start slow and speed up. d = t**2.
            - ease-out. Start fast and slow down. d = t * (2 - t).
            - ease-in-out. Accelerate during the first half-time and
              decelerate during the second half-time.
              d = 2t**2 for t < 1/2, else d = -1 + (4 - 2t) * t.

    Returns
    -------
    Relative morph progress, somewhere between 0 (source) and 1 (target).
    """
    if np.any(np.asarray(t) < 0) or np.any(np.asarray(t) > 1):
        raise ValueError('Relative time must be within bounds 0 <= t <= 1')

    flavor = flavor.lower().strip().replace('_', '-')

    if flavor == 'linear':
        d = t

    elif flavor == 'ease-in':
        d = t ** 2

    elif flavor == 'ease-out':
        d = t * (2 - t)

    elif flavor == 'ease-in-out':
        d = np.where(np.asarray(t) < 0.5, 2 * t ** 2, -1 + (4 - 2 * t) * t)
        if np.ndim(d) == 0: d = float(d)

    else:
        raise ValueError('Unsupported transition "%s"' % flavor)

    return d


def flotate_bitmap(M):
    """
    Convert integers (0-255) to floats (0-1).
    This way subsequent blend operations won't cause discrete artefacts.
    """
    if M.dtype == np.dtype('uint8'):
        return M.astype(float) / 255.
    else:
        return M


def quantize_bitmap(M):
    """
    Convert floats (0-1) back to unsigned integers (0-255),
    the way image encoders like it. 8-bit input passes through untouched.
    """
    M = np.asarray(M)
    if M.dtype == np.dtype('uint8'):
        return M

    Mi = np.round(M.astype(float) * 255)
    Mi = np.clip(Mi, 0, 255)
    return Mi.astype(np.uint8)


def rgba(M):
    """
    Promote a greyscale, RGB or RGBa bitmap (float or uint8)
    to a floating point RGBa array.

    Usage
    -----
    >>> Ma = rgba(M)
    """
    Mf = flotate_bitmap(np.asarray(M))

    if Mf.ndim == 2:
        # From greyscale or black-n-white to RGBa
        Ma = np.ones((Mf.shape[0], Mf.shape[1], 4))
        for c in range(3):
            Ma[:, :, c] = Mf

    elif Mf.shape[2] == 3:
        # From RGB to RGBa
        Ma = np.ones((Mf.shape[0], Mf.shape[1], 4))
        Ma[:, :, :3] = Mf

    else:
        # No need to do anything
        Ma = Mf.astype(float)

    return Ma


def load_rgba(imagefile):
    """
    Load a bitmap and store it as a floating point RGBa array,
    regardless of file format and content (colour/greyscale/b&w).

    Usage
    -----
    >>> M = load_rgba(imagefile)

    Returns
    -------
    The array will have dimensions M[y, x, c], with channel:

    ===   ===   =======
    #     id    content
    ===   ===   =======
    0     R     Red
    1     G     Green
    2     B     Blue
    3     a     Alpha
    ===   ===   =======

    Data type will be floating point (values between 0 - 1).
    """
    return rgba(plt.imread(imagefile))


def save_rgba(M, imagefile, quality=90, backcolor=(0, 0, 0)):
    """
    Save RGBa bitmap float array to bitmap file (PNG or JPG or whatever).

    Usage
    -----
    >>> save_rgba(M, imagefile, quality)
    """
    ext = path.splitext(imagefile)[-1][1:].lower()
    if ext == 'jpg' or ext == 'jpeg':

        # Make it as flat as a pancake,
        # and diss the alpha channel (penalty would be an OSError)
        Mi = quantize_bitmap(flatten_bitmap(rgba(M), backcolor))[:, :, :3]
        Image.fromarray(Mi).save(imagefile, quality=quality)

    else:
        Image.fromarray(quantize_bitmap(M)).save(imagefile)


def composite_bitmaps(A, B=None, backcolor=None):
    """
    Make a composite of bitmap A over bitmap B and/or solid background color.
    Both A & B should be RGBa arrays.
    """
    if not backcolor is None:
        G = np.ones_like(A)
        for c in range(3):
            G[:, :, c] = backcolor[c] / 255.
        if B is None:
            B = G
        else:
            B = composite_bitmaps(B, G)

    M = np.zeros_like(A)

    t_a = A[:, :, 3]
    t_b = B[:, :, 3]

    for c in range(3):
        M[:, :, c] = A[:, :, c] * t_a + B[:, :, c] * t_b * (1 - t_a)

    M[:, :, 3] = t_a + t_b * (1 - t_a)

    return M


def flatten_bitmap(A, backcolor=(0, 0, 0)):
    """
    Flatten a bitmap; apply a solid background color.
    """
    return composite_bitmaps(A, backcolor=backcolor)


def stretch_bitmap(M, h, w):
    """
    Resample a bitmap to the given height and width.
    No attempt whatsoever is made to respect the aspect ratio;
    the image is simply stretched or squeezed to fit.

    Usage
    -----
    >>> Ms = stretch_bitmap(M, h, w)
    """
    if M.shape[0] == h and M.shape[1] == w:
        return M

    Ms = resize(M, (h, w) + M.shape[2:], order=1, mode='edge',
                anti_aliasing=True)

    return np.clip(Ms, 0, 1)


def difference(A, B):
    """
    Mean absolute per-channel difference between two bitmaps,
    a rough measure for how much changes from one frame to the next.
    """
    return float(bn.nanmean(np.abs(np.asarray(A, dtype=float) -
                                   np.asarray(B, dtype=float))))


def grid(M, x=None, y=None):
    """
    Set up a mesh grid covering a bitmap.

    Usage
    -----
    For all coordinates
    >>> X, Y = grid(M)

    For selected x & y levels only
    >>> X, Y = grid(M, x, y)
    """
    if x is None: x = np.arange(M.shape[1])
    if y is None: y = np.arange(M.shape[0])

    X, Y = np.meshgrid(x, y)

    return X, Y


def cross_dissolve(Ka, Kb, t=0.5):
    """
    Plain per-pixel linear blend of two equally sized bitmaps.
    No warping is involved, which makes this the quick & cheap option.
    """
    t = float(np.clip(t, 0, 1))
    return Ka * (1 - t) + Kb * t


def anchors(h, w):
    """
    Synthetic node trajectories that keep the canvas boundary in place:
    the four corners and the four edge midpoints, with rows [x1, y1, x2, y2].

    Usage
    -----
    >>> nodes = anchors(h, w)
    """
    xy = [(0     , 0     ), (w     , 0     ), (0     , h     ), (w     , h     ),
          (w / 2., 0     ), (w / 2., h     ), (0     , h / 2.), (w     , h / 2.)]

    return np.array([[x, y, x, y] for x, y in xy], dtype=float)


def augment(nodes, h, w):
    """
    Append the boundary anchors to user defined node trajectories.
    User nodes keep their index, anchors come last.
    """
    nodes = np.asarray(nodes, dtype=float).reshape(-1, 4)
    return np.vstack((nodes, anchors(h, w)))


def interpos(nodes, t=0.5):
    """
    Interpolate node positions for a given intermediate frame.

    Usage
    -----
    >>> posi = interpos(nodes, t)
    """

    # Start and stop positions
    pos1 = nodes[:, 0:2]
    pos2 = nodes[:, 2:4]
    if t == 0: return pos1.copy()
    if t == 1: return pos2.copy()

    # Plain linear interpolation
    posi = pos1 * (1 - t) + pos2 * t

    return posi


def same_point(p, q, eps=EPS_POINT):
    """
    Are two points the same, give or take a rounding error?
    """
    return abs(p[0] - q[0]) < eps and abs(p[1] - q[1]) < eps


def orientation(a, b, c):
    """
    Twice the signed area of triangle a-b-c.
    Positive for counter-clockwise in a y-up frame
    (which is clockwise on screen, where y points down).
    """
    return (b[0] - a[0]) * (c[1] - a[1]) - (b[1] - a[1]) * (c[0] - a[0])


def incircle(p, a, b, c):
    """
    Check whether point p lies strictly inside the circumcircle of
    triangle a-b-c, and return True if it does.

    Notes
    -----
    The classic determinant

        | ax  ay  ax^2 + ay^2 |
        | bx  by  bx^2 + by^2 |
        | cx  cy  cx^2 + cy^2 |

    with all vertices taken relative to p is positive for an inside point
    only when a-b-c is counter-clockwise. Multiplying with the orientation
    makes the verdict independent of vertex order and y axis direction.
    Points exactly on the circle are considered outside.
    """
    ax, ay = a[0] - p[0], a[1] - p[1]
    bx, by = b[0] - p[0], b[1] - p[1]
    cx, cy = c[0] - p[0], c[1] - p[1]

    det = (ax * ax + ay * ay) * (bx * cy - cx * by) - \
          (bx * bx + by * by) * (ax * cy - cx * ay) + \
          (cx * cx + cy * cy) * (ax * by - bx * ay)

    return det * orientation(a, b, c) > 0


def beyond_edge(p, u, v):
    """
    Check whether point p lies outside the convex hull edge u-v,
    for an edge with the hull on its right-hand side.
    That is strictly to the left of u-v, or on the open segment between u & v.
    """
    o = orientation(u, v, p)
    if o != 0:
        return o > 0

    # Collinear; only points in between the end points count
    return (p[0] - u[0]) * (v[0] - u[0]) + (p[1] - u[1]) * (v[1] - u[1]) > 0 \
       and (p[0] - v[0]) * (u[0] - v[0]) + (p[1] - v[1]) * (u[1] - v[1]) > 0


def conflict(p, tri, V):
    """
    Does point p invalidate triangle *tri* (vertex indices into V)?
    For a real triangle this is the circumcircle test. For a triangle with
    the super vertex, the circumcircle degenerates to the open half-plane
    beyond its hull edge.
    """
    i, j, k = tri
    if k == SUPER:
        return beyond_edge(p, V[i], V[j])
    return incircle(p, V[i], V[j], V[k])


def delaunay(points, eps=EPS_POINT):
    """
    Delaunay triangulation by means of the incremental Bowyer-Watson algorithm.

    Usage
    -----
    >>> simplices = delaunay(points)

    Parameters
    ----------
    points : array
        Point coordinates with rows [x, y].
    eps : float, optional
        Tolerance for considering two points identical.
        Duplicates of an earlier point are left out of the mesh.

    Returns
    -------
    Integer array with rows [i, j, k], indices into the given points.
    Empty (shape 0 x 3) when there are fewer than three distinct points,
    or when all points are collinear.

    Notes
    -----
    For each new point, every triangle whose circumcircle contains the point
    is removed. The resulting polygonal hole is re-triangulated by connecting
    the new point to the boundary edges of the hole. Finally all triangles
    touching the super triangle are discarded. Performance is O(n**2),
    which is fine for a few hundred points.

    The super triangle lies infinitely far away, and its three corners are
    merged into one symbolic vertex (*SUPER*). Every hull edge then has a
    companion triangle with that vertex, which can only be invalidated by
    points beyond the hull.
    """
    P = np.asarray(points, dtype=float).reshape(-1, 2)
    n = len(P)
    empty = np.zeros((0, 3), dtype=int)

    # Weed out duplicates
    keep = []
    for i in range(n):
        if not any(same_point(P[i], P[j], eps) for j in keep):
            keep.append(i)
    if len(keep) < 3:
        return empty

    V = [tuple(map(float, p)) for p in P]

    # Start out with the first three points that are not collinear,
    # counter-clockwise, plus one super triangle for each hull edge
    a, b = keep[0], keep[1]
    for c in keep[2:]:
        o = orientation(V[a], V[b], V[c])
        if o != 0: break
    else:
        return empty
    if o < 0: b, c = c, b

    triangles = [(a, b, c), (b, a, SUPER), (c, b, SUPER), (a, c, SUPER)]

    for i in keep:
        if i in (a, b, c): continue
        p = V[i]

        # Triangles that are no longer kosher with this point around
        bad = [tri for tri in triangles if conflict(p, tri, V)]

        # Boundary of the hole: edges that are not shared by two bad triangles
        edges = [(tri[0], tri[1]) for tri in bad] + \
                [(tri[1], tri[2]) for tri in bad] + \
                [(tri[2], tri[0]) for tri in bad]
        tally = Counter(tuple(sorted(edge)) for edge in edges)
        hole  = [edge for edge in edges if tally[tuple(sorted(edge))] == 1]

        # Out with the old, in with the new (super vertex last)
        bad = set(bad)
        triangles = [tri for tri in triangles if not tri in bad]
        for u, v in hole:
            if u == SUPER:
                triangles.append((v, i, SUPER))
            elif v == SUPER:
                triangles.append((i, u, SUPER))
            else:
                triangles.append((u, v, i))

    # Dismantle the scaffolding
    triangles = [tri for tri in triangles if not SUPER in tri]

    return np.array(triangles, dtype=int).reshape(-1, 3)


def triangulate(points, eps=EPS_POINT):
    """
    Delaunay triangulation returning vertex coordinates instead of indices.

    Usage
    -----
    >>> triangles = triangulate(points)

    Returns
    -------
    Float array of shape (m, 3, 2), triangle vertices [x, y].
    """
    P = np.asarray(points, dtype=float).reshape(-1, 2)
    return P[delaunay(P, eps)].reshape(-1, 3, 2)


def triangle_area(tri):
    """
    Unsigned area of a triangle given as three rows [x, y].
    """
    return 0.5 * abs(orientation(tri[0], tri[1], tri[2]))


def affine(src, dst, eps=EPS_AREA):
    """
    Affine transformation that maps the three source vertices
    onto the three destination vertices.

    Usage
    -----
    >>> a, b, c, d, e, f = affine(src, dst)

    Returns
    -------
    Coefficients (a, b, c, d, e, f) for the mapping
    (x, y) --> (a*x + b*y + e, c*x + d*y + f),
    or None in case of a degenerate source triangle.

    Notes
    -----
    Two independent sets of three equations, solved with Cramer's rule.
    Twice the signed area of the source triangle is the shared denominator.
    """
    (x1s, y1s), (x2s, y2s), (x3s, y3s) = src
    (x1d, y1d), (x2d, y2d), (x3d, y3d) = dst

    det = x1s * (y2s - y3s) + x2s * (y3s - y1s) + x3s * (y1s - y2s)
    if abs(det) < eps:
        return None

    a = ((x1d - x3d) * (y2s - y3s) - (x2d - x3d) * (y1s - y3s)) / det
    b = ((x2d - x3d) * (x1s - x3s) - (x1d - x3d) * (x2s - x3s)) / det
    c = ((y1d - y3d) * (y2s - y3s) - (y2d - y3d) * (y1s - y3s)) / det
    d = ((y2d - y3d) * (x1s - x3s) - (y1d - y3d) * (x2s - x3s)) / det
    e = x3d - a * x3s - b * y3s
    f = y3d - c * x3s - d * y3s

    return a, b, c, d, e, f


def invert_affine(A, eps=1e-12):
    """
    Inverse of an affine transformation, or None if it collapses the plane.
    """
    a, b, c, d, e, f = A
    det = a * d - b * c
    if abs(det) < eps:
        return None

    ai, bi = d / det, -b / det
    ci, di = -c / det, a / det
    ei = -(ai * e + bi * f)
    fi = -(ci * e + di * f)

    return ai, bi, ci, di, ei, fi


def apply_affine(A, x, y):
    """
    Apply affine transformation coefficients to coordinates.

    Usage
    -----
    >>> xt, yt = apply_affine(A, x, y)
    """
    a, b, c, d, e, f = A
    return a * x + b * y + e, c * x + d * y + f


def inside_triangle(tri, h, w, eps=1e-9):
    """
    Find the pixels with centers inside (or on the edge of) a triangle,
    clipped to a canvas of given height and width.

    Usage
    -----
    >>> rows, cols = inside_triangle(tri, h, w)

    Notes
    -----
    The test is inclusive, so pixels on a shared edge belong to both
    neighbours. Piecewise affine maps agree on shared edges,
    hence painting such a pixel twice does no harm.
    """
    nothing = np.zeros(0, dtype=int), np.zeros(0, dtype=int)

    (x0, y0), (x1, y1), (x2, y2) = tri
    denom = (y1 - y2) * (x0 - x2) + (x2 - x1) * (y0 - y2)
    if abs(denom) < EPS_AREA:
        return nothing

    # Bounding box, clipped to the canvas
    c_min = max(int(np.ceil (min(x0, x1, x2) - eps)), 0)
    c_max = min(int(np.floor(max(x0, x1, x2) + eps)), w - 1)
    r_min = max(int(np.ceil (min(y0, y1, y2) - eps)), 0)
    r_max = min(int(np.floor(max(y0, y1, y2) + eps)), h - 1)
    if c_max < c_min or r_max < r_min:
        return nothing

    X, Y = grid(None, np.arange(c_min, c_max + 1), np.arange(r_min, r_max + 1))

    # Barycentric coordinates
    l0 = ((y1 - y2) * (X - x2) + (x2 - x1) * (Y - y2)) / denom
    l1 = ((y2 - y0) * (X - x2) + (x0 - x2) * (Y - y2)) / denom
    l2 = 1 - l0 - l1

    mask = (l0 >= -eps) & (l1 >= -eps) & (l2 >= -eps)

    return Y[mask], X[mask]


def sample(M, x, y):
    """
    Bilinear sampling of a bitmap at (fractional) coordinates.
    Coordinates beyond the canvas are clamped to the nearest edge pixel.

    Returns
    -------
    Array with one row per coordinate, one column per channel.
    """
    coords = np.vstack((y, x))
    S = np.empty((len(x), M.shape[2]))
    for c in range(M.shape[2]):
        S[:, c] = map_coordinates(M[:, :, c], coords, order=1, mode='nearest')

    return S


def warp_triangle(W, Ka, Kb, tri_a, tri_b, tri_i, t=0.5):
    """
    Paint one triangle of an inbetween frame.

    The intermediate triangle *tri_i* is filled with a blend of
    key A sampled in triangle *tri_a* (weight 1 - t),
    and key B sampled in triangle *tri_b* (weight t).

    Usage
    -----
    >>> painted = warp_triangle(W, Ka, Kb, tri_a, tri_b, tri_i, t)

    Returns
    -------
    False in case of a degenerate triangle (W is left as-is), else True.

    Notes
    -----
    Only deform things if we really need to; a key with zero weight is not
    sampled at all, so its triangle is allowed to be degenerate.
    """
    h, w = W.shape[:2]

    if 2 * triangle_area(tri_i) < EPS_AREA:
        return False

    # Map from the intermediate triangle back to the keys
    maps = []
    for K, tri, weight in ((Ka, tri_a, 1 - t), (Kb, tri_b, t)):
        if weight <= 0: continue
        A = affine(tri, tri_i)
        if A is None: return False
        A_inv = invert_affine(A)
        if A_inv is None: return False
        maps.append((K, A_inv, weight))

    rows, cols = inside_triangle(tri_i, h, w)
    if not len(rows):
        return True

    x = cols.astype(float)
    y = rows.astype(float)

    P = np.zeros((len(rows), W.shape[2]))
    for K, A_inv, weight in maps:
        xk, yk = apply_affine(A_inv, x, y)
        P += weight * sample(K, xk, yk)

    W[rows, cols] = P

    return True


def tween(Ka, Kb, nodes, t=0.5, simplices=None, W=None):
    """
    Make an inbetween frame by piecewise affine warping and cross-dissolving.

    Usage
    -----
    >>> T = tween(Ka, Kb, nodes, t)

    Parameters
    ----------
    Ka, Kb : RGBa arrays
        Source and target key frames, with equal dimensions.
    nodes : array
        Corresponding point coordinates with rows [xa, ya, xb, yb],
        including boundary anchors (see *augment*).
    t : float, optional
        Morph progress, from 0 (all A) to 1 (all B). Clamped to this range.
    simplices : array, optional
        Triangulation of the source positions (see *delaunay*).
        Computed on the fly if not supplied.
    W : RGBa array, optional
        Scratch canvas to paint on. Will be cleared first.

    Returns
    -------
    The inbetween bitmap (which is W if that was supplied).

    Notes
    -----
    One mesh topology, derived from the source positions, is reused for the
    target and intermediate positions. Should nodes cross paths along the way,
    then triangles can flip over and show as artefacts.
    """
    t = float(np.clip(t, 0, 1))

    if W is None:
        W = np.zeros_like(Ka, dtype=float)
    else:
        W[:] = 0

    if simplices is None:
        simplices = delaunay(nodes[:, 0:2])

    pos_a = nodes[:, 0:2]
    pos_b = nodes[:, 2:4]
    pos_i = interpos(nodes, t)

    for tri in simplices:
        warp_triangle(W, Ka, Kb, pos_a[tri], pos_b[tri], pos_i[tri], t)

    return W


def big_figure(figname, w, h, maxsize=(20., 10.), facecolor='white'):
    """
    Set up a large figure window,
    with canvas size aspect matching the given bitmap dimensions,
    and with axes spanning the full canvas.

    Usage
    -----
    >>> fig = big_figure(figname, w, h)
    """
    aspect = 1. * w / h
    fig_w  = maxsize[0]
    fig_h  = fig_w / aspect

    if fig_h > maxsize[1]:
        fig_h = maxsize[1]
        fig_w = fig_h * aspect

    fig = plt.figure(figname, facecolor=facecolor, figsize=(fig_w, fig_h))
    plt.axes((0, 0, 1, 1))

    return fig


def meshplot(K, nodes, simplices=None, t=0., ax=None,
             color=(0, .5, 1.), pointcolor=(1., .5, 0.)):
    """
    Show the triangle mesh at morph progress *t* on top of a bitmap.
    User nodes are emphasized with dots, boundary anchors are not.

    Usage
    -----
    >>> meshplot(K, nodes, simplices, t)

    Parameters
    ----------
    nodes : array
        Node trajectories including the 8 trailing boundary anchors.
    """
    if ax is None: ax = plt.gca()
    if simplices is None: simplices = delaunay(nodes[:, 0:2])

    pos = interpos(nodes, t)

    ax.imshow(K, interpolation='nearest')
    if len(simplices):
        ax.triplot(pos[:, 0], pos[:, 1], simplices,
                   '-', color=color, linewidth=1)
    ax.plot(pos[:-8, 0], pos[:-8, 1], '.', color=pointcolor, markersize=7)

    # Tight fit around bitmap
    ax.set_xlim(0, K.shape[1])
    ax.set_ylim(K.shape[0], 0)
    ax.axis('off')
