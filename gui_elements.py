# ========================================================
# ============ gui_elements.py (Recents Pane) ============
# ========================================================
from __future__ import annotations

from typing import List, Optional

from PyQt5.QtWidgets import (
    QWidget,
    QVBoxLayout,
    QHBoxLayout,
    QTableView,
    QHeaderView,
    QMessageBox,
    QLineEdit,
    QLabel,
    QPushButton,
    QApplication,
    QAbstractItemView,
)
from PyQt5.QtCore import (
    Qt,
    QAbstractTableModel,
    QModelIndex,
    pyqtSignal,
)

from models import RecentItem
from stores import RecentsStore


def format_seconds(seconds: float) -> str:
    total = int(max(0.0, seconds or 0.0))
    h, rem = divmod(total, 3600)
    m, s = divmod(rem, 60)
    if h:
        return f"{h}:{m:02d}:{s:02d}"
    return f"{m}:{s:02d}"


class RecentsTableModel(QAbstractTableModel):
    """
    Read-only view over ``RecentsStore.items`` (newest first) with a
    substring filter across title and URL.
    """

    HEADERS = ["Title", "Resume at", "URL"]

    def __init__(self, store: RecentsStore):
        super().__init__()
        self.store = store
        self.current_filter: str = ""
        self.visible: List[RecentItem] = []
        self.refresh()

    def refresh(self) -> None:
        self.beginResetModel()
        needle = self.current_filter
        if not needle:
            self.visible = list(self.store.items)
        else:
            self.visible = [
                it for it in self.store.items
                if needle in it.title.lower() or needle in it.url_string.lower()
            ]
        self.endResetModel()

    def apply_filter(self, text: str) -> None:
        self.current_filter = (text or "").strip().lower()
        self.refresh()

    def item_at(self, row: int) -> Optional[RecentItem]:
        if 0 <= row < len(self.visible):
            return self.visible[row]
        return None

    # ---------- Qt Model API ----------

    def rowCount(self, parent=QModelIndex()) -> int:
        return len(self.visible)

    def columnCount(self, parent=QModelIndex()) -> int:
        return len(self.HEADERS)

    def data(self, index, role=Qt.DisplayRole):
        if not index.isValid():
            return None
        item = self.visible[index.row()]
        col = index.column()
        if role == Qt.DisplayRole:
            if col == 0:
                return item.title
            if col == 1:
                return format_seconds(item.playback_time)
            return item.url_string
        if role == Qt.ToolTipRole:
            return item.url_string
        return None

    def headerData(self, section, orientation, role=Qt.DisplayRole):
        if orientation == Qt.Horizontal and role == Qt.DisplayRole:
            return self.HEADERS[section]
        return None

    def flags(self, index):
        return Qt.ItemIsSelectable | Qt.ItemIsEnabled


class RecentsPane(QWidget):
    """
    Recently played videos:
    - search filter
    - double-click or "Play" to resume a video
    - copy URL, delete selected, clear all
    """
    play_requested = pyqtSignal(object)  # RecentItem

    def __init__(self, store: RecentsStore, app_title: str = "Scrimm", parent=None):
        super().__init__(parent)
        self.store = store
        self.app_title = app_title
        self.model = RecentsTableModel(store)

        layout = QVBoxLayout(self)

        header_row = QHBoxLayout()
        header_row.addWidget(QLabel("Recents"))
        header_row.addStretch()
        self.search_bar = QLineEdit()
        self.search_bar.setPlaceholderText("Search recents...")
        self.search_bar.textChanged.connect(self.model.apply_filter)
        header_row.addWidget(self.search_bar)
        layout.addLayout(header_row)

        self.table_view = QTableView()
        self.table_view.setModel(self.model)
        self.table_view.setSelectionBehavior(QAbstractItemView.SelectRows)
        self.table_view.setSelectionMode(QAbstractItemView.ExtendedSelection)
        self.table_view.setVerticalScrollMode(QAbstractItemView.ScrollPerPixel)
        self.table_view.setWordWrap(False)
        self.table_view.doubleClicked.connect(lambda idx: self._play_row(idx.row()))
        header = self.table_view.horizontalHeader()
        header.setSectionResizeMode(0, QHeaderView.Stretch)
        header.setSectionResizeMode(1, QHeaderView.ResizeToContents)
        header.setSectionResizeMode(2, QHeaderView.Interactive)
        layout.addWidget(self.table_view)

        buttons_row = QHBoxLayout()
        self.play_button = QPushButton("Play")
        self.play_button.clicked.connect(self._play_selected)
        self.copy_url_button = QPushButton("Copy URL")
        self.copy_url_button.clicked.connect(self._copy_selected_urls)
        self.delete_button = QPushButton("Delete Selected")
        self.delete_button.clicked.connect(self._delete_selected)
        self.clear_button = QPushButton("Clear All")
        self.clear_button.clicked.connect(self._clear_all)

        buttons_row.addWidget(self.play_button)
        buttons_row.addStretch()
        buttons_row.addWidget(self.copy_url_button)
        buttons_row.addWidget(self.delete_button)
        buttons_row.addWidget(self.clear_button)
        layout.addLayout(buttons_row)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _selected_items(self) -> List[RecentItem]:
        selection_model = self.table_view.selectionModel()
        if not selection_model:
            return []
        rows = sorted({idx.row() for idx in selection_model.selectedIndexes()})
        return [it for it in (self.model.item_at(r) for r in rows) if it is not None]

    def _play_row(self, row: int) -> None:
        item = self.model.item_at(row)
        if item is not None:
            self.play_requested.emit(item)

    def _play_selected(self) -> None:
        items = self._selected_items()
        if items:
            self.play_requested.emit(items[0])

    def _copy_selected_urls(self) -> None:
        urls = [it.url_string for it in self._selected_items()]
        if not urls:
            return
        QApplication.clipboard().setText("\n".join(urls))

    def _delete_selected(self) -> None:
        items = self._selected_items()
        if not items:
            return
        reply = QMessageBox.question(
            self,
            self.app_title,
            f"Delete {len(items)} selected entr{'y' if len(items) == 1 else 'ies'}?",
            QMessageBox.Yes | QMessageBox.No,
            QMessageBox.No,
        )
        if reply != QMessageBox.Yes:
            return
        for it in items:
            self.store.delete(it)
        self.refresh()

    def _clear_all(self) -> None:
        if not self.store.items:
            return
        reply = QMessageBox.question(
            self,
            self.app_title,
            "Clear all recents?",
            QMessageBox.Yes | QMessageBox.No,
            QMessageBox.No,
        )
        if reply == QMessageBox.Yes:
            self.store.clear_all()
            self.refresh()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def refresh(self) -> None:
        self.model.refresh()
