import pytest

pytest.importorskip("PyQt5.QtMultimedia")
pytest.importorskip("PyQt5.QtMultimediaWidgets")

from models import FoundVideo  # noqa: E402
from players import (  # noqa: E402
    BasePlayer,
    MpvPlayer,
    PlayerError,
    PlayerHandle,
    VlcPlayer,
)
from registry import PLAYERS, Registry  # noqa: E402

VIDEO = FoundVideo(page_title="Clip", video_url="https://v.example/clip.mp4", last_played_time=12.5)


class RecordingPlayer(BasePlayer):
    name = "recording"
    instances = []

    def __init__(self, logger=None):
        super().__init__(logger)
        self.played = []
        self.focused = 0
        self.stopped = 0
        RecordingPlayer.instances.append(self)

    def play(self, video):
        self.played.append(video)
        self.current = video

    def is_active(self):
        return self.current is not None

    def focus(self):
        self.focused += 1

    def stop(self):
        self.stopped += 1
        self.current = None


@pytest.fixture(autouse=True)
def recording_backend():
    RecordingPlayer.instances = []
    PLAYERS.register("recording", RecordingPlayer)
    yield
    PLAYERS._by_name.pop("recording", None)


def test_builtin_backends_are_registered():
    assert {"qt", "mpv", "vlc"} <= set(PLAYERS.names())


def test_registry_unknown_name():
    reg = Registry("player")
    with pytest.raises(KeyError, match="Unknown player"):
        reg.create("nope")


def test_show_or_focus_reuses_single_player(logger):
    handle = PlayerHandle("recording", logger=logger)
    handle.show_or_focus(VIDEO)
    handle.show_or_focus(VIDEO)
    other = FoundVideo(page_title="Other", video_url="https://v.example/other.mp4")
    handle.show_or_focus(other)

    assert len(RecordingPlayer.instances) == 1
    player = RecordingPlayer.instances[0]
    assert player.played == [VIDEO, other]
    assert player.focused == 1


def test_handle_forwards_progress_and_close(logger):
    handle = PlayerHandle("recording", logger=logger)
    progress, closed = [], []
    handle.on_progress(lambda url, s: progress.append((url, s)))
    handle.on_closed(lambda url, s: closed.append((url, s)))
    handle.show_or_focus(VIDEO)

    player = RecordingPlayer.instances[0]
    player._emit_progress(VIDEO.video_url, 30.0)
    player._emit_closed(VIDEO.video_url, -1.0)

    assert progress == [(VIDEO.video_url, 30.0)]
    assert closed == [(VIDEO.video_url, 0.0)]


def test_handle_stop(logger):
    handle = PlayerHandle("recording", logger=logger)
    handle.stop()
    handle.show_or_focus(VIDEO)
    handle.stop()
    assert RecordingPlayer.instances[0].stopped == 1


def test_mpv_command_resumes_at_position(logger):
    cmd = MpvPlayer(logger=logger).build_command("/usr/bin/mpv", VIDEO)
    assert cmd[0] == "/usr/bin/mpv"
    assert "--start=+12.50" in cmd
    assert cmd[-1] == VIDEO.video_url


def test_vlc_command_resumes_at_position(logger):
    cmd = VlcPlayer(logger=logger).build_command("/usr/bin/vlc", VIDEO)
    assert "--start-time=12.50" in cmd
    assert cmd[-1] == VIDEO.video_url


def test_missing_executable_raises(logger):
    player = MpvPlayer(logger=logger)
    player.executable = "scrimm-no-such-player-binary"
    with pytest.raises(PlayerError):
        player.play(VIDEO)
    assert not player.is_active()
