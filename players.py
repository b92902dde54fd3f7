# ========================================================
# ================  players.py  ==========================
# ========================================================
from __future__ import annotations

import shutil
import subprocess
import threading
import time
from typing import Callable, List, Optional

from PyQt5.QtCore import QObject, QTimer, QUrl, Qt, pyqtSignal
from PyQt5.QtMultimedia import QMediaContent, QMediaPlayer
from PyQt5.QtMultimediaWidgets import QVideoWidget
from PyQt5.QtWidgets import QHBoxLayout, QMainWindow, QPushButton, QSlider, QVBoxLayout, QWidget

from config import DEFAULT_PLAYER
from loggers import DEBUG_LOGGER
from models import FoundVideo
from registry import PLAYERS

# (url, seconds)
ProgressHandler = Callable[[str, float], None]


class PlayerError(RuntimeError):
    pass


class BasePlayer:
    """
    A playback backend. Backends report the position of the current video
    through ``progress_callback`` while playing and ``closed_callback`` once
    playback of that video ends.
    """
    name = "base"

    def __init__(self, logger=None):
        self.logger = logger or DEBUG_LOGGER
        self.current: Optional[FoundVideo] = None
        self.progress_callback: Optional[ProgressHandler] = None
        self.closed_callback: Optional[ProgressHandler] = None

    def _log(self, msg: str) -> None:
        if self.logger is not None:
            self.logger.log_message(f"[{self.__class__.__name__}] {msg}")

    def _emit_progress(self, url: str, seconds: float) -> None:
        if self.progress_callback is not None:
            self.progress_callback(url, max(0.0, float(seconds)))

    def _emit_closed(self, url: str, seconds: float) -> None:
        if self.closed_callback is not None:
            self.closed_callback(url, max(0.0, float(seconds)))

    @property
    def current_url(self) -> Optional[str]:
        return self.current.video_url if self.current is not None else None

    def play(self, video: FoundVideo) -> None:
        raise NotImplementedError

    def is_active(self) -> bool:
        raise NotImplementedError

    def focus(self) -> None:
        pass

    def stop(self) -> None:
        raise NotImplementedError


# ======================================================================
# Qt backend
# ======================================================================

class _VideoWindow(QMainWindow):
    closed = pyqtSignal()

    def __init__(self):
        super().__init__()
        self.setWindowTitle("Scrimm Player")
        self.resize(960, 540)

        self.video_widget = QVideoWidget()
        self.media = QMediaPlayer(self, QMediaPlayer.VideoSurface)
        self.media.setVideoOutput(self.video_widget)

        self.play_btn = QPushButton("Pause")
        self.play_btn.clicked.connect(self._toggle)
        self.slider = QSlider(Qt.Horizontal)
        self.slider.setRange(0, 0)
        self.slider.sliderMoved.connect(self.media.setPosition)
        self.media.durationChanged.connect(lambda d: self.slider.setRange(0, int(d)))
        self.media.positionChanged.connect(self._on_position)
        self.media.stateChanged.connect(self._on_state)

        controls = QHBoxLayout()
        controls.addWidget(self.play_btn)
        controls.addWidget(self.slider, 1)

        body = QWidget()
        layout = QVBoxLayout(body)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.addWidget(self.video_widget, 1)
        layout.addLayout(controls)
        self.setCentralWidget(body)

    def _toggle(self) -> None:
        if self.media.state() == QMediaPlayer.PlayingState:
            self.media.pause()
        else:
            self.media.play()

    def _on_position(self, pos: int) -> None:
        if not self.slider.isSliderDown():
            self.slider.setValue(int(pos))

    def _on_state(self, state) -> None:
        self.play_btn.setText("Pause" if state == QMediaPlayer.PlayingState else "Play")

    def closeEvent(self, event):
        self.closed.emit()
        super().closeEvent(event)


class QtPlayer(BasePlayer):
    """
    In-process player window on QtMultimedia. One window is reused for
    every video; the position is reported every ``report_interval_ms``.
    """
    name = "qt"

    def __init__(self, logger=None, report_interval_ms: int = 5000):
        super().__init__(logger)
        self.report_interval_ms = report_interval_ms
        self._window: Optional[_VideoWindow] = None
        self._timer: Optional[QTimer] = None
        self._pending_seek_ms = 0

    def _ensure_window(self) -> _VideoWindow:
        if self._window is None:
            w = _VideoWindow()
            w.closed.connect(self._on_window_closed)
            w.media.mediaStatusChanged.connect(self._on_media_status)
            w.media.error.connect(self._on_media_error)
            self._timer = QTimer(w)
            self._timer.setInterval(self.report_interval_ms)
            self._timer.timeout.connect(self._report_progress)
            self._window = w
        return self._window

    def _position_s(self) -> float:
        if self._window is None:
            return 0.0
        return self._window.media.position() / 1000.0

    def play(self, video: FoundVideo) -> None:
        w = self._ensure_window()
        if self.current is not None and self.current.video_url != video.video_url:
            self._emit_progress(self.current.video_url, self._position_s())

        self.current = video
        self._pending_seek_ms = int(max(0.0, video.last_played_time) * 1000)
        self._log(f"Playing {video.video_url} from {video.last_played_time:.1f}s")
        w.setWindowTitle(video.page_title)
        w.media.setMedia(QMediaContent(QUrl(video.video_url)))
        w.media.play()
        self._timer.start()
        self.focus()

    def _on_media_status(self, status) -> None:
        if status in (QMediaPlayer.LoadedMedia, QMediaPlayer.BufferedMedia) and self._pending_seek_ms > 0:
            self._window.media.setPosition(self._pending_seek_ms)
            self._pending_seek_ms = 0
        elif status == QMediaPlayer.EndOfMedia and self.current is not None:
            # finished videos restart from the beginning next time
            self._emit_progress(self.current.video_url, 0.0)
        elif status == QMediaPlayer.InvalidMedia:
            self._log(f"Invalid media: {self.current_url}")

    def _on_media_error(self, *_args) -> None:
        if self._window is not None:
            self._log(f"Media error: {self._window.media.errorString()}")

    def _report_progress(self) -> None:
        if self.current is not None and self._window is not None:
            if self._window.media.state() == QMediaPlayer.PlayingState:
                self._emit_progress(self.current.video_url, self._position_s())

    def _on_window_closed(self) -> None:
        if self._timer is not None:
            self._timer.stop()
        if self.current is None:
            return
        video, pos = self.current, self._position_s()
        if self._window.media.mediaStatus() == QMediaPlayer.EndOfMedia:
            pos = 0.0
        self._window.media.stop()
        self.current = None
        self._log(f"Player closed at {pos:.1f}s")
        self._emit_closed(video.video_url, pos)

    def is_active(self) -> bool:
        return self._window is not None and self._window.isVisible() and self.current is not None

    def focus(self) -> None:
        if self._window is None:
            return
        self._window.show()
        self._window.raise_()
        self._window.activateWindow()

    def stop(self) -> None:
        if self._window is not None and self._window.isVisible():
            self._window.close()


# ======================================================================
# External process backends
# ======================================================================

class ExternalPlayer(BasePlayer):
    """
    Hands the URL to a desktop player process. The position reported on
    exit is estimated as start offset plus wall-clock time played.
    """
    executable = ""

    def __init__(self, logger=None, terminate_timeout_s: float = 3.0):
        super().__init__(logger)
        self.terminate_timeout_s = terminate_timeout_s
        self._proc: Optional[subprocess.Popen] = None

    def build_command(self, exe: str, video: FoundVideo) -> List[str]:
        raise NotImplementedError

    def play(self, video: FoundVideo) -> None:
        exe = shutil.which(self.executable)
        if exe is None:
            raise PlayerError(f"'{self.executable}' was not found on PATH")
        self.stop()

        cmd = self.build_command(exe, video)
        self._log(f"Launching: {' '.join(cmd)}")
        try:
            proc = subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except OSError as e:
            raise PlayerError(f"could not start {self.executable}: {e}") from e
        self._proc = proc
        self.current = video
        t = threading.Thread(
            target=self._watch,
            args=(proc, video, time.monotonic()),
            name=f"{self.name}-watch",
            daemon=True,
        )
        t.start()

    def _watch(self, proc: subprocess.Popen, video: FoundVideo, started: float) -> None:
        code = proc.wait()
        played = time.monotonic() - started
        self._log(f"{self.executable} exited with code {code} after {played:.1f}s")
        if self._proc is proc:
            self.current = None
        self._emit_closed(video.video_url, video.last_played_time + played)

    def is_active(self) -> bool:
        return self._proc is not None and self._proc.poll() is None

    def stop(self) -> None:
        proc = self._proc
        if proc is None or proc.poll() is not None:
            return
        proc.terminate()
        try:
            proc.wait(timeout=self.terminate_timeout_s)
        except subprocess.TimeoutExpired:
            self._log(f"{self.executable} did not exit; killing.")
            proc.kill()


class MpvPlayer(ExternalPlayer):
    name = "mpv"
    executable = "mpv"

    def build_command(self, exe: str, video: FoundVideo) -> List[str]:
        return [
            exe,
            "--force-window=yes",
            f"--start=+{video.last_played_time:.2f}",
            f"--force-media-title={video.page_title}",
            video.video_url,
        ]


class VlcPlayer(ExternalPlayer):
    name = "vlc"
    executable = "vlc"

    def build_command(self, exe: str, video: FoundVideo) -> List[str]:
        return [
            exe,
            "--play-and-exit",
            f"--start-time={video.last_played_time:.2f}",
            f"--meta-title={video.page_title}",
            video.video_url,
        ]


PLAYERS.register(QtPlayer.name, QtPlayer)
PLAYERS.register(MpvPlayer.name, MpvPlayer)
PLAYERS.register(VlcPlayer.name, VlcPlayer)


# ======================================================================
# Handle
# ======================================================================

class PlayerHandle(QObject):
    """
    The single player instance of the app. Backend callbacks may fire on
    any thread; the signals deliver them on the handle's thread.
    """
    progress = pyqtSignal(str, float)
    closed = pyqtSignal(str, float)

    def __init__(self, backend: str = DEFAULT_PLAYER, logger=None, parent=None):
        super().__init__(parent)
        self.backend = backend
        self.logger = logger or DEBUG_LOGGER
        self._player: Optional[BasePlayer] = None

    def _ensure_player(self) -> BasePlayer:
        if self._player is None:
            self._player = PLAYERS.create(self.backend, logger=self.logger)
            self._player.progress_callback = self.progress.emit
            self._player.closed_callback = self.closed.emit
        return self._player

    def on_progress(self, handler: ProgressHandler) -> None:
        self.progress.connect(handler)

    def on_closed(self, handler: ProgressHandler) -> None:
        self.closed.connect(handler)

    def show_or_focus(self, video: FoundVideo) -> None:
        """Play ``video``, or just raise the player if it is already playing it."""
        player = self._ensure_player()
        if player.is_active() and player.current_url == video.video_url:
            player.focus()
            return
        player.play(video)

    def stop(self) -> None:
        if self._player is not None:
            self._player.stop()
