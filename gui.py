# ========================================================
# ================  gui.py  ==============================
# ========================================================
from __future__ import annotations

import os
import sys
import threading
from pathlib import Path
from typing import List, Optional

from PyQt5.QtGui import QTextCursor
from PyQt5.QtWidgets import (
    QApplication, QMainWindow, QWidget, QVBoxLayout, QHBoxLayout,
    QListWidget, QPushButton, QPlainTextEdit, QTabWidget, QAction,
    QActionGroup, QGroupBox, QLabel, QMessageBox, QComboBox, QLineEdit,
    QStackedWidget,
)
from PyQt5.QtCore import QObject, pyqtSignal, QThread, pyqtSlot, Qt

import config
from gui_elements import RecentsPane
from loggers import DEBUG_LOGGER
from models import FoundVideo, RecentItem
from players import PlayerError, PlayerHandle
from registry import PLAYERS
from session import BrowsingSession, SessionError
from stores import KeyValueStore, ProviderStore, RecentsStore
from submanagers import DatabaseConfig, DatabaseSubmanager

if getattr(sys, 'frozen', False):
    # Frozen builds: use the bundled CA file for requests
    cert_path = os.path.join(sys._MEIPASS, 'certifi', 'cacert.pem')
    if os.path.exists(cert_path):
        os.environ['REQUESTS_CA_BUNDLE'] = cert_path
        os.environ['SSL_CERT_FILE'] = cert_path

    # Frozen Playwright only looks in local folders; point it at the global browsers
    if "PLAYWRIGHT_BROWSERS_PATH" not in os.environ and sys.platform == 'win32':
        base = os.environ.get('LOCALAPPDATA')
        if base:
            os.environ["PLAYWRIGHT_BROWSERS_PATH"] = os.path.join(base, "ms-playwright")


APP_TITLE = "Scrimm"

# GUI preferences kept next to the recents in the key/value table
STATE_PROVIDER_KEY = "GuiLastProvider"
STATE_PLAYER_KEY = "GuiPlayerBackend"

DARK_STYLESHEET = """
    QMainWindow, QWidget {
        background-color: #1f2125;
        color: #e3e5e8;
    }
    QTabWidget::pane {
        border: 1px solid #34373d;
    }
    QTabBar::tab {
        background: #2a2d32;
        color: #b9bcc2;
        padding: 7px 18px;
        border-bottom: 2px solid transparent;
    }
    QTabBar::tab:selected {
        color: #ffffff;
        border-bottom: 2px solid #e5484d;
    }
    QLineEdit, QPlainTextEdit, QListWidget, QTableView, QComboBox {
        background-color: #17181b;
        color: #e3e5e8;
        border: 1px solid #34373d;
        border-radius: 4px;
        padding: 4px;
        selection-background-color: #e5484d;
    }
    QPlainTextEdit {
        font-family: Menlo, Consolas, monospace;
        font-size: 12px;
    }
    QHeaderView::section {
        background-color: #2a2d32;
        color: #b9bcc2;
        border: none;
        padding: 4px 6px;
    }
    QPushButton {
        background-color: #2f3237;
        color: #e3e5e8;
        border: 1px solid #3d4047;
        padding: 5px 14px;
        border-radius: 4px;
        font-weight: bold;
    }
    QPushButton:hover {
        border-color: #e5484d;
    }
    QPushButton:disabled {
        color: #6b6e75;
    }
    QGroupBox {
        font-weight: bold;
        border: 1px solid #34373d;
        border-radius: 4px;
        margin-top: 14px;
        padding-top: 6px;
    }
    QGroupBox::title {
        subcontrol-origin: margin;
        left: 8px;
    }
    QMenuBar, QMenu {
        background-color: #2a2d32;
        color: #e3e5e8;
    }
    QMenuBar::item:selected, QMenu::item:selected {
        background-color: #e5484d;
    }
"""


# ======================= SESSION WORKER ==================================

class SessionWorker(QObject):
    """
    Owns one BrowsingSession on its own QThread. Every Playwright call
    happens here; the UI only sees the signals.
    """
    video_found = pyqtSignal(object)     # FoundVideo
    status_update = pyqtSignal(str)
    finished = pyqtSignal(bool, str)

    def __init__(
        self,
        url: str,
        stop_event: threading.Event,
        session_config: Optional[BrowsingSession.Config] = None,
    ):
        super().__init__()
        self.url = url
        self.stop_event = stop_event
        self.session_config = session_config
        self.session: Optional[BrowsingSession] = None

    @pyqtSlot()
    def run(self):
        session = BrowsingSession(
            self.url,
            on_video_found=self._emit_video,
            config=self.session_config,
        )
        self.session = session
        try:
            self.status_update.emit(f"Opening {self.url}…")
            session.open()
            if self.stop_event.is_set():
                self.finished.emit(True, "Stopped.")
                return
            self.status_update.emit(f"Browsing {session.current_url or self.url}")
            session.run(self.stop_event)
            self.finished.emit(True, f"Found {session.coordinator.accepted_count} video(s).")
        except SessionError as e:
            self.finished.emit(False, str(e))
        except Exception as e:
            import traceback
            DEBUG_LOGGER.log_message(f"[SessionWorker] {traceback.format_exc()}")
            self.finished.emit(False, f"Browser session failed: {e}")
        finally:
            session.close()

    def _emit_video(self, video: FoundVideo) -> None:
        if not self.stop_event.is_set():
            self.video_found.emit(video)

    def request_navigation(self, url: str) -> None:
        if self.session is not None:
            self.session.request_navigation(url)


# ======================= MAIN GUI CLASS ==================================

class ScrimmGUI(QMainWindow):
    def __init__(self) -> None:
        super().__init__()

        self.setWindowTitle(APP_TITLE)
        self.setGeometry(100, 100, 1100, 720)
        self.setMinimumSize(800, 520)
        self.setStyleSheet(DARK_STYLESHEET)

        self.run_thread: Optional[QThread] = None
        self.worker: Optional[SessionWorker] = None
        self._stop_event: Optional[threading.Event] = None
        self.all_log_lines: List[str] = []

        config.ensure_app_dirs()
        self.db = DatabaseSubmanager(DatabaseConfig(), logger=DEBUG_LOGGER)
        self.kv = KeyValueStore(self.db)
        self.recents = RecentsStore(self.kv)
        self.recents.load()
        self.providers = ProviderStore()
        self.providers.load()

        self.player = self._make_player(self.kv.get(STATE_PLAYER_KEY) or config.DEFAULT_PLAYER)

        self._build_menu()
        self._build_body()
        self._load_state()

        DEBUG_LOGGER.message_signal.connect(self._append_debug_message)
        DEBUG_LOGGER.log_message("[Debug] Debug logger initialized.")

    # ---------------- UI building ----------------
    def _build_menu(self) -> None:
        menu = self.menuBar()

        file_menu = menu.addMenu("File")
        exit_action = QAction("Exit", self)
        exit_action.triggered.connect(self.close)
        file_menu.addAction(exit_action)

        player_menu = menu.addMenu("Player")
        self.player_actions = QActionGroup(self)
        self.player_actions.setExclusive(True)
        for name in PLAYERS.names():
            act = QAction(name, self, checkable=True)
            act.setChecked(name == self.player.backend)
            act.triggered.connect(lambda _checked, n=name: self._set_player_backend(n))
            self.player_actions.addAction(act)
            player_menu.addAction(act)

        help_menu = menu.addMenu("Help")
        about_action = QAction("About", self)
        about_action.triggered.connect(self._show_about)
        help_menu.addAction(about_action)

    def _build_body(self) -> None:
        self.main_tabs = QTabWidget()
        self.setCentralWidget(self.main_tabs)

        self.views = QStackedWidget()
        self._build_home_ui()
        self._build_browser_ui()
        self.main_tabs.addTab(self.views, "Browse")

        self._build_log_ui()
        self.statusBar().showMessage("Ready")

    def _build_home_ui(self) -> None:
        self.home_widget = QWidget()
        layout = QVBoxLayout(self.home_widget)

        bar = QHBoxLayout()
        self.address_bar = QLineEdit()
        self.address_bar.setPlaceholderText("Enter a web address or search…")
        self.address_bar.returnPressed.connect(self._on_go_clicked)
        self.provider_combo = QComboBox()
        for p in self.providers.providers:
            self.provider_combo.addItem(p.name)
        self.provider_combo.setEnabled(bool(self.providers.providers))
        self.go_btn = QPushButton("Go")
        self.go_btn.clicked.connect(self._on_go_clicked)
        bar.addWidget(self.address_bar, 1)
        bar.addWidget(self.provider_combo)
        bar.addWidget(self.go_btn)
        layout.addLayout(bar)

        self.recents_pane = RecentsPane(self.recents, APP_TITLE, self)
        self.recents_pane.play_requested.connect(self._on_recent_play)
        layout.addWidget(self.recents_pane, 1)

        self.views.addWidget(self.home_widget)

    def _build_browser_ui(self) -> None:
        self.browser_widget = QWidget()
        layout = QVBoxLayout(self.browser_widget)

        top = QHBoxLayout()
        self.back_btn = QPushButton("← Back")
        self.back_btn.clicked.connect(self._leave_browser)
        self.browser_status = QLabel("")
        self.browser_status.setTextInteractionFlags(Qt.TextSelectableByMouse)
        top.addWidget(self.back_btn)
        top.addWidget(self.browser_status, 1)
        layout.addLayout(top)

        nav = QHBoxLayout()
        self.browser_address = QLineEdit()
        self.browser_address.setPlaceholderText("Navigate the open browser…")
        self.browser_address.returnPressed.connect(self._on_browser_navigate)
        nav.addWidget(self.browser_address, 1)
        layout.addLayout(nav)

        found_box = QGroupBox("Videos found in this session")
        found_layout = QVBoxLayout(found_box)
        self.found_list = QListWidget()
        self.found_list.itemDoubleClicked.connect(self._on_found_double_clicked)
        found_layout.addWidget(self.found_list)
        layout.addWidget(found_box, 1)

        self.session_videos: List[FoundVideo] = []
        self.views.addWidget(self.browser_widget)

    def _build_log_ui(self) -> None:
        page = QWidget()
        col = QVBoxLayout(page)
        col.setContentsMargins(0, 5, 0, 0)

        self.log_filter = QLineEdit()
        self.log_filter.setPlaceholderText("Filter log lines (e.g. 'BrowsingSession', 'Accepted')")
        self.log_filter.textChanged.connect(self._filter_logs)
        col.addWidget(self.log_filter)

        self.log_view = QPlainTextEdit()
        self.log_view.setReadOnly(True)
        self.log_view.setLineWrapMode(QPlainTextEdit.NoWrap)
        self.log_view.setMaximumBlockCount(5000)
        col.addWidget(self.log_view)

        self.main_tabs.addTab(page, "Log")

    # ---------------- log pane ----------------
    def _log_matches(self, line: str) -> bool:
        needle = self.log_filter.text().strip().lower()
        return not needle or needle in line.lower()

    @pyqtSlot(str)
    def _append_debug_message(self, msg: str) -> None:
        self.all_log_lines.append(msg)
        if self._log_matches(msg):
            self.log_view.appendPlainText(msg)
            self.log_view.moveCursor(QTextCursor.End)

    @pyqtSlot(str)
    def _filter_logs(self, _text: str) -> None:
        self.log_view.setPlainText("\n".join(ln for ln in self.all_log_lines if self._log_matches(ln)))
        self.log_view.moveCursor(QTextCursor.End)

    # ---------------- address bar ----------------
    def _resolve_input(self, text: str) -> Optional[str]:
        """Address-bar text -> URL: a web address, else a provider search."""
        if config.looks_like_address(text):
            url = config.normalize_address(text)
            if url:
                return url
        provider = self.providers.by_name(self.provider_combo.currentText())
        if provider is None:
            return None
        return provider.search_url_for(text)

    def _on_go_clicked(self) -> None:
        text = self.address_bar.text().strip()
        if not text:
            return
        url = self._resolve_input(text)
        if url is None:
            QMessageBox.warning(self, APP_TITLE, "That is not a web address and no search provider is available.")
            return
        self._save_state()
        self._start_session(url)

    def _on_browser_navigate(self) -> None:
        text = self.browser_address.text().strip()
        url = self._resolve_input(text) if text else None
        if url and self.worker is not None:
            self.worker.request_navigation(url)
            self.browser_address.clear()

    # ---------------- browser session ----------------
    def _start_session(self, url: str) -> None:
        if self.run_thread and self.run_thread.isRunning():
            self._leave_browser()

        # one event per session, never cleared
        self._stop_event = threading.Event()
        self.session_videos = []
        self.found_list.clear()
        self.browser_status.setText(url)
        self.views.setCurrentWidget(self.browser_widget)
        self.statusBar().showMessage(f"Opening {url}…")

        self.run_thread = QThread(self)
        self.worker = SessionWorker(url, self._stop_event)
        self.worker.moveToThread(self.run_thread)

        self.run_thread.started.connect(self.worker.run)
        self.worker.status_update.connect(self._on_session_status)
        self.worker.video_found.connect(self._on_video_found, Qt.QueuedConnection)
        self.worker.finished.connect(self._on_session_finished, Qt.QueuedConnection)

        self.run_thread.finished.connect(self._on_thread_finished)
        self.worker.finished.connect(self.run_thread.quit)
        self.worker.finished.connect(self.worker.deleteLater)
        self.run_thread.finished.connect(self.run_thread.deleteLater)

        self.run_thread.start()

    def _leave_browser(self) -> None:
        """Stop the session and wait until its page is blank and the browser is closed."""
        thread = self.run_thread
        self._detach_worker()
        if thread is not None and thread.isRunning():
            self.statusBar().showMessage("Closing browser…")
            if not thread.wait(15000):
                DEBUG_LOGGER.log_message("[ScrimmGUI] Session thread did not stop in time.")
        self.run_thread = None
        self.worker = None
        self.views.setCurrentWidget(self.home_widget)
        self.recents_pane.refresh()
        self.statusBar().showMessage("Ready")

    def _detach_worker(self) -> None:
        """Stop the current worker and stop listening to it."""
        if self._stop_event is not None:
            self._stop_event.set()
        worker = self.worker
        if worker is None:
            return
        for signal, slot in (
            (worker.status_update, self._on_session_status),
            (worker.video_found, self._on_video_found),
            (worker.finished, self._on_session_finished),
        ):
            try:
                signal.disconnect(slot)
            except (TypeError, RuntimeError):
                pass

    def _from_current_worker(self) -> bool:
        sender = self.sender()
        return sender is None or sender is self.worker

    @pyqtSlot()
    def _on_thread_finished(self) -> None:
        if self.sender() is self.run_thread:
            self.run_thread = None
            self.worker = None

    @pyqtSlot(str)
    def _on_session_status(self, text: str) -> None:
        if not self._from_current_worker():
            return
        self.browser_status.setText(text)
        self.statusBar().showMessage(text)

    @pyqtSlot(bool, str)
    def _on_session_finished(self, ok: bool, message: str) -> None:
        if not self._from_current_worker():
            return
        self.statusBar().showMessage(message if ok else f"Browser error: {message}")
        if not ok:
            self.browser_status.setText(message)

    @pyqtSlot(object)
    def _on_video_found(self, video: FoundVideo) -> None:
        if not self._from_current_worker():
            return
        item = self.recents.add_or_update(video)
        self.recents_pane.refresh()
        self.session_videos.append(video)
        self.found_list.addItem(f"{video.page_title}  |  {video.video_url}")
        self.statusBar().showMessage(f"Found: {video.page_title}")
        self._play(item.as_video())

    def _on_found_double_clicked(self, _item) -> None:
        row = self.found_list.currentRow()
        if 0 <= row < len(self.session_videos):
            video = self.session_videos[row]
            resume = self.recents.playback_time_for(video.video_url)
            self._play(FoundVideo(video.page_title, video.video_url, resume))

    # ---------------- playback ----------------
    def _make_player(self, backend: str) -> PlayerHandle:
        if backend not in PLAYERS.names():
            DEBUG_LOGGER.log_message(f"[ScrimmGUI] Unknown player '{backend}', using 'qt'.")
            backend = "qt"
        handle = PlayerHandle(backend, logger=DEBUG_LOGGER, parent=self)
        handle.on_progress(self._on_player_progress)
        handle.on_closed(self._on_player_progress)
        return handle

    def _set_player_backend(self, name: str) -> None:
        if name == self.player.backend:
            return
        self.player.stop()
        self.player = self._make_player(name)
        self.kv.set(STATE_PLAYER_KEY, name)
        self.statusBar().showMessage(f"Player: {name}")

    def _play(self, video: FoundVideo) -> None:
        try:
            self.player.show_or_focus(video)
        except PlayerError as e:
            self.statusBar().showMessage(str(e))
            QMessageBox.warning(self, APP_TITLE, f"Could not start the player:\n{e}")

    @pyqtSlot(object)
    def _on_recent_play(self, item: RecentItem) -> None:
        self._play(item.as_video())

    @pyqtSlot(str, float)
    def _on_player_progress(self, url: str, seconds: float) -> None:
        if self.recents.update_playback_time(url, seconds):
            self.recents_pane.refresh()

    # ---------------- state ----------------
    def _load_state(self) -> None:
        name = self.kv.get(STATE_PROVIDER_KEY)
        if name:
            idx = self.provider_combo.findText(name)
            if idx >= 0:
                self.provider_combo.setCurrentIndex(idx)

    def _save_state(self) -> None:
        name = self.provider_combo.currentText()
        if name:
            self.kv.set(STATE_PROVIDER_KEY, name)

    # ---------------- misc ----------------
    def _show_about(self) -> None:
        QMessageBox.information(
            self,
            APP_TITLE,
            "Scrimm\n\n"
            "- Type a web address, or search with the selected provider.\n"
            "- Play a video on the page; the real media URL is detected\n"
            "  and handed to the player.\n"
            "- Recents keep your position; double-click to resume.\n"
            "- Pick the player backend in the Player menu.",
        )

    def closeEvent(self, event):
        if self.run_thread and self.run_thread.isRunning():
            self._detach_worker()
            if not self.run_thread.wait(15000):
                self.run_thread.terminate()
                self.run_thread.wait(1000)
        self.player.stop()
        self.db.close()
        event.accept()


def main() -> int:
    QApplication.setAttribute(Qt.AA_EnableHighDpiScaling, True)
    QApplication.setAttribute(Qt.AA_UseHighDpiPixmaps, True)

    app = QApplication(sys.argv)

    # Make sure our global logger lives in the Qt main thread
    DEBUG_LOGGER.moveToThread(app.thread())

    window = ScrimmGUI()
    window.show()
    return app.exec_()


if __name__ == "__main__":
    project_root = Path(__file__).resolve().parent
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))

    raise SystemExit(main())
