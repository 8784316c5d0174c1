#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Background workers and playback timing for a Qt based front-end.

Heavy lifting (preview morphs, frame sequence generation, export) is done
in worker threads, so that the user interface stays responsive. Each worker
carries an *abort* flag that is checked in between frames, a *report* signal
for status messages, and a *crashed* signal for when things go south.

Usage
-----
Recommended import convention
>>> import meshmorph_qt as qt
"""

# Dependencies: Open source
import sys, traceback
from PyQt5 import QtCore

# Dependencies: Home grown
import meshmorph_go as gogo

# Project meta info
__author__   = gogo.__author__
__version__  = gogo.__version__
__revision__ = gogo.__revision__


class ThreadPreview(QtCore.QThread):
    """
    Render a single inbetween for the live preview.
    """
    report  = QtCore.pyqtSignal(str)
    crashed = QtCore.pyqtSignal(object, object)

    def __init__(self, engine, points, t=0.5, mode='advanced'):

        super().__init__()

        self.engine = engine
        self.points = points
        self.t      = t
        self.mode   = mode
        self.image  = None
        self.abort  = False


    def run(self):
        try:
            self.image = self.engine.morph(self.points, self.t, self.mode)

        except Exception:
            self.crashed.emit(sys.exc_info(), traceback.format_exc())


class ThreadSequence(QtCore.QThread):
    """
    Generate all frames of a morph sequence. Meep meep!
    """
    report  = QtCore.pyqtSignal(str)
    crashed = QtCore.pyqtSignal(object, object)

    def __init__(self, engine, points, recipe):

        super().__init__()

        self.engine = engine
        self.points = points
        self.recipe = recipe
        self.movie  = None
        self.abort  = False


    def run(self):
        try:
            self.movie = gogo.generate(self.engine, self.points,
                                       self.recipe, thread=self)

        except Exception:
            self.crashed.emit(sys.exc_info(), traceback.format_exc())


class ThreadExport(QtCore.QThread):
    """
    Hand a finished frame sequence to the encoder.
    Encoder failures are reported through *crashed*;
    the frames are left as they are, so the user can simply try again.
    """
    report  = QtCore.pyqtSignal(str)
    crashed = QtCore.pyqtSignal(object, object)

    def __init__(self, movie, fps, filename, backcolor=(0, 0, 0)):

        super().__init__()

        self.movie     = movie
        self.fps       = fps
        self.filename  = filename
        self.backcolor = backcolor
        self.result    = None
        self.abort     = False


    def run(self):
        try:
            self.result = gogo.export(self.movie, self.fps, self.filename,
                                      self.backcolor, thread=self)

        except Exception:
            self.crashed.emit(sys.exc_info(), traceback.format_exc())


class Player(QtCore.QObject):
    """
    Loop a frame sequence on screen.

    A basic timer polls a few times per frame interval, and the playback
    state machine decides when it is time to move on; this keeps the pace
    steady even when timer events arrive late. Connect *shown* to whatever
    displays the frame with the given index.
    """
    shown = QtCore.pyqtSignal(int)

    def __init__(self, movie, fps=30, parent=None):

        super().__init__(parent)

        self.movie    = movie
        self.playback = gogo.Playback(len(movie), fps)
        self.timer    = QtCore.QBasicTimer()
        self.clock    = QtCore.QElapsedTimer()
        self.clock.start()


    def now(self):
        """
        Milliseconds since the player was created.
        """
        return self.clock.elapsed()


    def poll(self):
        return max(1, int(self.playback.interval / 4))


    def play(self):
        """
        Start or resume playback.
        """
        if not self.playback.play(self.now()): return
        self.timer.start(self.poll(), self)


    def pause(self):
        """
        Pause playback, and stay at the current frame.
        """
        if self.playback.playing:
            print(gogo.timestamp() + 'Pausing movie playback')
        self.playback.pause()
        self.timer.stop()

    stop = pause


    def toggle(self):
        """
        The play/pause button has been pressed.
        """
        if self.playback.playing:
            self.pause()
        else:
            self.play()


    def reset(self):
        """
        Stop and rewind to the first frame.
        """
        self.playback.reset()
        self.timer.stop()
        self.shown.emit(self.playback.index)


    def speed(self, fps):
        """
        Change the playback speed (fps), also while running.
        """
        self.playback.speed(fps)
        gogo.shoutout('Changing playback speed to {}'.format(fps))
        if self.timer.isActive():
            self.timer.start(self.poll(), self)


    def current(self):
        """
        The frame that is on display right now.
        """
        return self.movie[self.playback.index]


    def timerEvent(self, event=None):
        """
        Show the next frame of the movie, if it is about time.
        """
        if self.playback.tick(self.now()):
            self.shown.emit(self.playback.index)
