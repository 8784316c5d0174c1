#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Make a Morph, one step at a time. Go go go!

This is a collection of methods that handle the various logistical processes;
organize settings, keep track of feature points, drive the warp engine,
line up frame sequences, play them back, and hand them over for export.
With other words, everything that may be of interest for either API or GUI
based operation.

Usage
-----
Recommended import convention
>>> import meshmorph_go as gogo

Quick start
>>> engine = gogo.MorphEngine(Ka, Kb)
>>> points = gogo.Correspondence()
>>> points.add(120, 80, 135, 90)
>>> movie  = gogo.sequence(engine, points, frames=30, fps=30)
>>> gogo.export(movie, 30, 'morph.gif')
"""

# Dependencies: Home grown
import meshmorph_algo as algo

# Dependencies: Open source
import json
import imageio
import numpy as np
from collections import namedtuple
from time import strftime, time
from os import path, makedirs
from PIL import Image
import matplotlib.pyplot as plt

# Project meta info
__author__   = algo.__author__
__version__  = algo.__version__
__revision__ = algo.__revision__

# Options for saving diagrams
chartopts = dict(dpi=150, transparent=True, bbox_inches='tight')

# Morph flavours: plain cross-dissolve, or mesh warp plus cross-dissolve
modes = ('simple', 'advanced')

# Permissible ranges for numeric morph settings
limits = {'frames' : (10, 120),
          'fps'    : (10,  60),
          'amount' : ( 0, 100)}

# Data containers
# - A user declared pair of corresponding coordinates, one per image.
# - A finished frame; read-only 8-bit RGBa bitmap plus timestamp (ms).
# - Validated morph parameters, see *check_settings*.
FeaturePoint = namedtuple('FeaturePoint',
                          'id source_x source_y target_x target_y')
Frame        = namedtuple('Frame', 'pixels timestamp')
Recipe       = namedtuple('Recipe', 'frames fps transition mode amount')


def settingspath():
    """
    Find a good spot for storing user preferences.

    On Linux or Windows:
        ~/.meshmorph
    On Mac:
        ~/Library/MeshMorph

    (Where ~ is an alias for the user home directory).
    """
    home = path.expanduser('~')

    if home.startswith('/Users'):
        folder = path.join(home, 'Library', 'MeshMorph')
    else:
        folder = path.join(home, '.meshmorph')

    return folder


def timestamp():
    """
    Return a timestamp string for a new log message.
    Formatted example (2011-12-30 21:30:46).
    """
    return '(%s) ' % strftime('%Y-%m-%d %H:%M:%S')


def duration(t):
    """
    Give a nice short and readable string representation of a given time
    duration in seconds, e.g. how long it took to generate a sequence.

    Usage
    -----
    >>> timetag = duration(t)

    Returns
    -------
    A nice and short readable time tag, such as '3h:15m:02s'.
    """
    if t < 10:
        return '%.2fs' % t
    elif t < 60:
        return '%.0fs' % t
    else:
        h = int(t // 3600)
        m = int((t - h * 3600) // 60)
        s = t - h * 3600 - m * 60
        if h < 1:
            return '%02d:%02d' % (m, s)
        else:
            return '%02dh:%02dm:%02ds' % (h, m, s)


def shoutout(msg='', thread=None):
    """
    Give an intermediate status report (during sequence generation or export).

    If a thread is given, the message is also sent through its *report*
    signal. That can be any object though, as long as it contains:
        - *abort*. A boolean status flag (True/False) that signals whether
          the user has had enough, and pressed a cancel button or such.
        - *report*. A progress report signal.
          Must have a method *emit* that accepts strings.
    """
    if msg:
        print(timestamp() + msg)
    if thread and msg:
        thread.report.emit(msg)


def semi_short_file_name(filename):
    """
    Given a potentially long file, take only the last bit;
    being the parent folder and basename.
    """
    parts = filename.replace('\\', '/').split('/')
    showname = '/'.join(parts[-2:])
    return showname


def default_settings():
    """
    Factory default settings for morphing and exporting.
    Returns a dictionary of dictionaries, if you know what I mean.

    The names of most variables roughly correspond to those on GUI controls.

    Usage
    -----
    >>> settings = default_settings()
    """

    print(timestamp() + 'Digging up default settings')

    # Store application version and revision,
    # for the sake of enabling backwards compatibility in future versions
    v = 'MeshMorph {} {}'.format(__version__, __revision__)

    # Morph sequence generation and preview
    s_morph = {'frames'     : 30        , # 10 - 120 frames
               'fps'        : 30        , # 10 - 60 fps
               'transition' : 'linear'  ,
               'mode'       : 'advanced',
               'amount'     : 0         } # 0 - 100 percent (preview)

    # Export
    s_render = {'name'      : 'morph'   ,
                'ext'       : 'gif'     ,
                'folder'    : ''        ,
                'backcolor' : (0, 0, 0) }

    # Pack all settings into one convenient bundle
    settings = {'version' : v       ,
                'morph'   : s_morph ,
                'render'  : s_render}

    return settings


def check_settings(settings):
    """
    Verify the morph settings are complete and within bounds,
    and bundle them in a read-only recipe.

    Usage
    -----
    >>> recipe = check_settings(settings)
    >>> recipe.frames, recipe.fps, recipe.transition, recipe.mode
    """
    for branch in ['morph', 'render']:
        if not branch in settings:
            raise ValueError('Missing branch "{}" in settings'.format(branch))

    s = settings['morph']
    for prop in Recipe._fields:
        if not prop in s:
            raise ValueError('Missing field "morph/{}" in settings'.format(prop))

    for prop in sorted(limits):
        v = s[prop]
        lo, hi = limits[prop]
        if isinstance(v, bool) or not isinstance(v, (int, float)) \
                or not lo <= v <= hi:
            msg = 'Setting morph/{} must be a number between {} and {}'
            raise ValueError(msg.format(prop, lo, hi))

    if int(s['frames']) != s['frames']:
        raise ValueError('Setting morph/frames must be a whole number')

    transition = str(s['transition']).lower().strip().replace('_', '-')
    if not transition in algo.transitions:
        raise ValueError('Unsupported transition "{}"'.format(s['transition']))

    mode = str(s['mode']).lower().strip()
    if not mode in modes:
        raise ValueError('Unsupported morph mode "{}"'.format(s['mode']))

    return Recipe(frames=int(s['frames']), fps=s['fps'],
                  transition=transition, mode=mode, amount=s['amount'])


def loadit(filename):
    """
    Load settings or feature points from a JSON file.
    """
    print(timestamp() + 'Loading ' + semi_short_file_name(filename))

    ext = path.splitext(filename)[1].lower()
    if ext != '.json':
        raise ValueError('Unsupported file extension ' + ext)

    with open(filename, 'r') as doc:
        data = json.load(doc)

    return data


def saveit(data, filename):
    """
    Save settings or feature points to a JSON file.
    """
    print(timestamp() + 'Saving ' + semi_short_file_name(filename))

    ext = path.splitext(filename)[1].lower()
    if ext != '.json':
        raise ValueError('Unsupported file extension ' + ext)

    with open(filename, 'w', encoding='utf-8') as doc:
        json.dump(data, doc, indent=4, sort_keys=True)


def load_settings(settingsfile=None):
    """
    Load user preferences from file.
    """

    # Start with default settings (facilitate backwards compatibility)
    settings = default_settings()

    # Load the file
    if not settingsfile:
        settingsfile = path.join(settingspath(), 'meshmorph.json')
    if not path.isfile(settingsfile):
        raise ValueError('Unable to locate settings file ' + settingsfile)
    settingz = loadit(settingsfile)

    # Is this really a settings file? Perform a few basic checks
    for prop in ['version', 'morph', 'render']:
        if not prop in settingz:
            raise ValueError('Missing field "{}" in settings'.format(prop))
    if not type(settingz['version']) is str \
            or not settingz['version'].startswith('MeshMorph'):
        raise ValueError('Settings file does not appear to be from MeshMorph')

    # Apply those sizzling settings
    settings['version'] = settingz['version']
    for branch in ['morph', 'render']:
        settings[branch].update(settingz[branch])
    settings['render']['backcolor'] = tuple(settings['render']['backcolor'])

    # Refuse nonsense right here, rather than halfway a morph
    check_settings(settings)

    return settings


def save_settings(settings, settingsfile=None):
    """
    Save user preferences to file.
    """
    if not settingsfile:
        folder = settingspath()
        if not path.isdir(folder): makedirs(folder)
        settingsfile = path.join(folder, 'meshmorph.json')
    saveit(settings, settingsfile)


class Correspondence(object):
    """
    Ordered collection of feature points, edited one point at a time.

    Usage
    -----
    >>> points = Correspondence()
    >>> points.add(10, 20, 15, 25)
    'point-1'
    >>> points.move('point-1', target=(18, 30))
    >>> points.delete('point-1')

    Notes
    -----
    Coordinates are never rejected, even if they are negative or beyond the
    image bounds. Ids are unique within a collection.
    """

    def __init__(self, points=None):
        self.points  = []
        self.counter = 0
        for p in points or []:
            self.add(p.source_x, p.source_y, p.target_x, p.target_y, id=p.id)


    def __len__(self):
        return len(self.points)


    def __iter__(self):
        return iter(list(self.points))


    def __getitem__(self, i):
        return self.points[i]


    def index(self, id):
        """
        Position of the feature point with the given id.
        """
        for i, p in enumerate(self.points):
            if p.id == id:
                return i
        raise KeyError('Unknown feature point "{}"'.format(id))


    def add(self, source_x, source_y, target_x=None, target_y=None, id=None):
        """
        Add a feature point. When the target position is omitted it starts
        out at the same spot as the source position.
        Returns the id of the new point.
        """
        if target_x is None: target_x = source_x
        if target_y is None: target_y = source_y

        if id is None:
            taken = set(p.id for p in self.points)
            while id is None or id in taken:
                self.counter += 1
                id = 'point-{}'.format(self.counter)
        elif any(p.id == id for p in self.points):
            raise ValueError('Duplicate feature point id "{}"'.format(id))

        self.points.append(FeaturePoint(id,
                                        float(source_x), float(source_y),
                                        float(target_x), float(target_y)))
        return id


    def move(self, id, source=None, target=None):
        """
        Move the source and/or target position (x, y) of a feature point.
        """
        i = self.index(id)
        p = self.points[i]
        if not source is None:
            p = p._replace(source_x=float(source[0]), source_y=float(source[1]))
        if not target is None:
            p = p._replace(target_x=float(target[0]), target_y=float(target[1]))
        self.points[i] = p


    def delete(self, id):
        """
        Remove a feature point.
        """
        del self.points[self.index(id)]


    def clear(self):
        self.points = []


    def nodes(self):
        """
        Node trajectories as an array with rows [xs, ys, xt, yt].
        """
        return nodes_of(self.points)


def nodes_of(points):
    """
    Convert feature points (a *Correspondence*, a list of *FeaturePoint*,
    or an array or list with rows [xs, ys, xt, yt]) to a node trajectory array.
    """
    if points is None:
        return np.zeros((0, 4))
    if algo.isarray(points):
        return np.asarray(points, dtype=float).reshape(-1, 4)

    points = list(points)
    if points and not isinstance(points[0], FeaturePoint):
        return np.asarray(points, dtype=float).reshape(-1, 4)

    nodes = [[p.source_x, p.source_y, p.target_x, p.target_y] for p in points]
    return np.array(nodes, dtype=float).reshape(-1, 4)


def save_points(points, filename):
    """
    Save feature points to a JSON file.
    """
    saveit([p._asdict() for p in points], filename)


def load_points(filename):
    """
    Load feature points from a JSON file into a fresh *Correspondence*.
    """
    data = loadit(filename)

    points = Correspondence()
    for p in data:
        points.add(p['source_x'], p['source_y'],
                   p['target_x'], p['target_y'], id=p['id'])

    return points


def freeze(M):
    """
    Flag an array as read-only, and return it.
    """
    M.flags.writeable = False
    return M


class MorphEngine(object):
    """
    Morph between a source and a target image, for any morph progress t.

    Usage
    -----
    >>> engine = MorphEngine(Ka, Kb)
    >>> M = engine.morph(points, t=0.5)

    Notes
    -----
    Both images are kept as read-only RGBa arrays of the same size; a target
    of a different size is stretched to fit the source (no aspect correction).
    Every engine paints on its own scratch canvas, so do not call a single
    engine from two threads at once. Use *clone* for a second one.
    """

    def __init__(self, Ka, Kb=None):
        self.Ka = freeze(algo.rgba(Ka))
        self.Kb = None
        self.h, self.w = self.Ka.shape[:2]
        self.W = np.zeros_like(self.Ka)

        if not Kb is None:
            self.set_target(Kb)


    def set_target(self, Kb):
        """
        Install the target image, stretched to the source dimensions if need be.
        """
        Kb = algo.rgba(Kb)

        if Kb.shape[:2] != (self.h, self.w):
            msg = 'Stretching target from {} x {} to {} x {}'
            print(timestamp() + msg.format(Kb.shape[1], Kb.shape[0],
                                           self.w, self.h))
            Kb = algo.stretch_bitmap(Kb, self.h, self.w)

        self.Kb = freeze(Kb)


    def clone(self):
        """
        Fresh engine with the same images and a scratch canvas of its own.
        """
        return MorphEngine(self.Ka, self.Kb)


    def mesh(self, points):
        """
        Augment the feature points with the boundary anchors,
        and triangulate their source positions.

        Usage
        -----
        >>> nodes, simplices = engine.mesh(points)
        """
        nodes = algo.augment(nodes_of(points), self.h, self.w)
        simplices = algo.delaunay(nodes[:, 0:2])

        return nodes, simplices


    def morph(self, points, t=0.5, mode='advanced', mesh=None):
        """
        Generate an inbetween image.

        Parameters
        ----------
        points : Correspondence, list of FeaturePoint, or array
            User defined feature points.
        t : float, optional
            Morph progress, from 0 (source) to 1 (target).
            Values beyond these limits are clamped.
        mode : str, optional
            Either 'advanced' (mesh warp and cross-dissolve)
            or 'simple' (cross-dissolve only).
        mesh : tuple, optional
            Output of *mesh* for these points, to save the trouble of
            triangulating over and over again.

        Returns
        -------
        RGBa bitmap array with the same dimensions as the source.
        """
        if self.Kb is None:
            raise ValueError('Both images required; please supply a target')
        if not mode in modes:
            raise ValueError('Unsupported morph mode "{}"'.format(mode))

        t = float(np.clip(t, 0, 1))

        if mode == 'simple':
            return algo.cross_dissolve(self.Ka, self.Kb, t)

        if mesh is None: mesh = self.mesh(points)
        nodes, simplices = mesh

        algo.tween(self.Ka, self.Kb, nodes, t, simplices, self.W)

        return self.W.copy()


    def preview(self, points, recipe):
        """
        Inbetween image for the preview slider position (*recipe.amount*),
        taking the transition profile into account.
        """
        t = algo.ease(recipe.amount / 100., recipe.transition)
        return self.morph(points, t, recipe.mode)


def sequence(engine, points, frames=30, fps=30, transition='linear',
             mode='advanced', thread=None):
    """
    Generate a series of inbetween images that together form a morph movie.

    Usage
    -----
    >>> movie = sequence(engine, points, frames, fps, transition, mode)

    Parameters
    ----------
    engine : MorphEngine
        Engine with both source and target loaded.
    frames : int, optional
        Total number of frames, source and target included.
    fps : float, optional
        Frame rate, which determines the frame timestamps.
    thread : object, optional
        Send status reports back through this channel, and abort as soon
        as its *abort* flag is raised. See *shoutout*.

    Returns
    -------
    A tuple of read-only 8-bit RGBa frames, or None if aborted.

    Notes
    -----
    The triangle mesh depends on the source positions only,
    hence it is computed once and recycled for all frames.
    """
    if engine.Kb is None:
        raise ValueError('Both images required; please supply a target')
    if not mode in modes:
        raise ValueError('Unsupported morph mode "{}"'.format(mode))
    if int(frames) < 1:
        raise ValueError('At least one frame is required')
    if not fps > 0:
        raise ValueError('Frame rate must be positive')

    # Fail early on a bogus transition
    algo.ease(0., transition)

    # And so it begins
    frames = int(frames)
    msg = 'Generating {} frames at {} fps, {} {}'
    shoutout(msg.format(frames, fps, mode, transition), thread=thread)
    stopwatch = -time()

    mesh = engine.mesh(points) if mode == 'advanced' else None
    movie = []

    # Hop through the frames
    for i in range(frames):
        if thread and thread.abort:
            shoutout('Sequence generation aborted', thread=thread)
            return None

        progress = 0. if frames == 1 else i / (frames - 1.)
        t = algo.ease(progress, transition)

        # Store as 8-bit RGBa
        M = algo.quantize_bitmap(engine.morph(points, t, mode, mesh))
        movie.append(Frame(freeze(M), i * (1000. / fps)))

        msg = 'Generated frame {} of {} with t={:.0f}%'
        shoutout(msg.format(i + 1, frames, t * 100), thread=thread)

    # Peace out
    stopwatch += time()
    shoutout('Inbetweening took ' + duration(stopwatch), thread=thread)

    return tuple(movie)


def generate(engine, points, recipe, thread=None):
    """
    Shorthand for *sequence* with parameters from a recipe.
    """
    return sequence(engine, points, recipe.frames, recipe.fps,
                    recipe.transition, recipe.mode, thread)


class Playback(object):
    """
    Ring playback of a frame sequence at a fixed frame rate.

    There are two states, 'stopped' and 'playing'. While playing, every call
    to *tick* checks the clock, and moves on to the next frame once at least
    one frame interval has passed since the last move. After the last frame
    comes the first one again.

    Usage
    -----
    >>> show = Playback(len(movie), fps)
    >>> show.play(now)
    >>> if show.tick(now): display(movie[show.index])

    Notes
    -----
    Times are in milliseconds, from any monotonic clock.
    """

    def __init__(self, n, fps=30):
        if not fps > 0:
            raise ValueError('Frame rate must be positive')

        self.n     = n
        self.fps   = fps
        self.index = 0
        self.state = 'stopped'
        self.last  = None


    @property
    def interval(self):
        return 1000. / self.fps


    @property
    def playing(self):
        return self.state == 'playing'


    def play(self, now):
        """
        Start or resume playback. Returns False if there is nothing to play.
        """
        if self.n < 1:
            print(timestamp() + 'Playback request cannot be honoured '
                                'due to empty movie reel ...')
            return False

        if not self.playing:
            msg = 'Starting playback loop: {} frames, {} fps'
            print(timestamp() + msg.format(self.n, self.fps))

        self.state = 'playing'
        self.last  = now
        return True


    def pause(self):
        """
        Cancel the schedule, but stay at the current frame.
        """
        self.state = 'stopped'
        self.last  = None

    stop = pause


    def reset(self):
        """
        Cancel the schedule and rewind to the first frame.
        """
        self.pause()
        self.index = 0


    def speed(self, fps):
        """
        Change the playback speed.
        """
        if not fps > 0:
            raise ValueError('Frame rate must be positive')
        self.fps = fps


    def tick(self, now):
        """
        Move on to the next frame if it is about time.
        Returns True if the frame index changed.
        """
        if not self.playing:
            return False
        if now - self.last < self.interval:
            return False

        self.index = (self.index + 1) % self.n
        self.last  = now
        return True


def export(frames, fps, filename, backcolor=(0, 0, 0), thread=None):
    """
    Hand a finished frame sequence over to an encoder.

    Usage
    -----
    >>> export(movie, fps, 'morph.gif')
    >>> export(movie, fps, 'morph.mp4')
    >>> export(movie, fps, '/some/folder/morph')

    Parameters
    ----------
    frames : sequence of Frame
        Output of *sequence*. Left untouched, so an export can be retried.
    fps : float
        Frame rate. For GIF the frame delay becomes 1000/fps milliseconds.
    filename : str
        Destination. The extension determines the format:
            - gif. Looping animated GIF.
            - mp4. H.264 video.
            - no extension. A folder with one PNG per frame,
              named after the folder (morph001.png, morph002.png, ...).
    backcolor : tuple, optional
        Background color (0-255) for formats without transparency.

    Returns
    -------
    File name of the export, or a list of PNG files.
    """
    if not len(frames):
        raise ValueError('Nothing to export; please generate frames first')
    if not fps > 0:
        raise ValueError('Frame rate must be positive')

    ext = path.splitext(filename)[1].lower()
    if not ext in ('', '.gif', '.mp4'):
        raise ValueError('Unsupported export format ' + ext)

    msg = 'Exporting {} frames to {}'
    shoutout(msg.format(len(frames), semi_short_file_name(filename)), thread)
    stopwatch = -time()

    if ext == '':
        if not path.isdir(filename): makedirs(filename)
        name  = path.basename(path.normpath(filename))
        stash = []
        for i, frame in enumerate(frames):
            if thread and thread.abort:
                shoutout('Export aborted', thread=thread)
                return stash
            f = path.join(filename, '{0}{1:03d}.png'.format(name, i + 1))
            algo.save_rgba(frame.pixels, f)
            stash.append(f)
        result = stash

    else:
        # Flat as a pancake, no alpha channel
        stack = []
        for frame in frames:
            M = algo.flatten_bitmap(algo.rgba(frame.pixels), backcolor)
            stack.append(algo.quantize_bitmap(M)[:, :, :3])

        if ext == '.gif':
            images = [Image.fromarray(M) for M in stack]
            delay  = int(round(1000. / fps))
            images[0].save(filename, save_all=True, append_images=images[1:],
                           duration=delay, loop=0)
        else:
            imageio.mimsave(filename, stack, fps=fps,
                            codec='libx264', pixelformat='yuv420p')
        result = filename

    stopwatch += time()
    shoutout('Export took ' + duration(stopwatch), thread=thread)

    return result


def meshmap(K, points, filename, t=0.):
    """
    Save a diagram of the triangle mesh at morph progress *t*,
    drawn on top of the given bitmap.

    Usage
    -----
    >>> f = meshmap(engine.Ka, points, 'mesh.png')
    """
    print(timestamp() + 'Drawing mesh map ' + semi_short_file_name(filename))

    K = algo.rgba(K)
    h, w = K.shape[:2]
    nodes = algo.augment(nodes_of(points), h, w)

    fig = algo.big_figure('meshmap', w, h)
    algo.meshplot(K, nodes, t=t)
    plt.savefig(filename, **chartopts)
    plt.close(fig)

    return filename
