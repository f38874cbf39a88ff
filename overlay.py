"""Status window showing session state, transcript preview and downloads."""

from __future__ import annotations

from typing import Optional

try:
    from PySide6.QtCore import Qt, QTimer
    from PySide6.QtGui import QCursor
    from PySide6.QtWidgets import QApplication, QLabel, QProgressBar, QVBoxLayout, QWidget
except Exception:  # pragma: no cover
    Qt = None  # type: ignore
    QTimer = None  # type: ignore
    QCursor = None  # type: ignore
    QApplication = None  # type: ignore
    QLabel = object  # type: ignore
    QProgressBar = object  # type: ignore
    QVBoxLayout = object  # type: ignore
    QWidget = object  # type: ignore

STATE_LABELS = {
    "idle": "Ready",
    "listening": "Listening...",
    "transcribing": "Transcribing...",
    "typing": "Typing...",
}

_BASE_STYLE = (
    "font-size: 18px; padding: 16px;"
    "background: rgba(0,0,0,190); border-radius: 12px;"
)


class StatusWindow(QWidget):
    def __init__(self) -> None:
        if Qt is None:
            raise RuntimeError("PySide6 is not installed")
        super().__init__()
        self.setWindowFlags(
            Qt.WindowStaysOnTopHint | Qt.FramelessWindowHint | Qt.Tool
        )
        self.setAttribute(Qt.WA_TranslucentBackground, True)
        self.setFixedWidth(300)

        self._label = QLabel("")
        self._label.setWordWrap(True)
        self._reset_style()

        self._level = QProgressBar()
        self._level.setRange(0, 100)
        self._level.setTextVisible(False)
        self._level.setFixedHeight(6)
        self._level.hide()

        layout = QVBoxLayout()
        layout.setContentsMargins(0, 0, 0, 0)
        layout.addWidget(self._label)
        layout.addWidget(self._level)
        self.setLayout(layout)

        self._hide_timer: Optional[QTimer] = None

    def show_near_cursor(self) -> None:
        """Position the window just above the mouse pointer and reveal it."""
        self._cancel_hide_timer()
        self.adjustSize()
        pos = QCursor.pos()
        self.move(pos.x() - self.width() // 2, pos.y() - self.height() - 20)
        self.show()

    def set_state(self, state: str) -> None:
        self._reset_style()
        self._label.setText(STATE_LABELS.get(state, state))
        self._level.setVisible(state == "listening")
        if state != "listening":
            self._level.setValue(0)

    def set_level(self, level: float) -> None:
        self._level.setValue(int(max(0.0, min(1.0, level)) * 100))

    def set_text(self, text: str) -> None:
        self._cancel_hide_timer()
        self._label.setText(text)
        self.adjustSize()

    def set_download_progress(self, label: str, percent: Optional[float], downloaded_bytes: int) -> None:
        if percent is None:
            text = f"Downloading {label}: {downloaded_bytes // (1024 * 1024)} MB"
        else:
            text = f"Downloading {label}: {int(percent * 100)}%"
        self.set_text(text)
        if not self.isVisible():
            self.show_near_cursor()

    def hide_with_delay(self, delay_ms: int = 500) -> None:
        """Hide the window after a short delay."""
        self._cancel_hide_timer()
        if QTimer is not None:
            self._hide_timer = QTimer()
            self._hide_timer.setSingleShot(True)
            self._hide_timer.timeout.connect(self.hide)
            self._hide_timer.start(delay_ms)

    def show_error(self, text: str, hide_after_ms: int = 2500) -> None:
        self._label.setStyleSheet("color: #FF6B6B;" + _BASE_STYLE)
        self.set_text(f"⚠️ {text}")
        self.show_near_cursor()
        self.hide_with_delay(hide_after_ms)

    def _cancel_hide_timer(self) -> None:
        if self._hide_timer is not None:
            self._hide_timer.stop()
            self._hide_timer = None

    def _reset_style(self) -> None:
        self._label.setStyleSheet("color: white;" + _BASE_STYLE)
