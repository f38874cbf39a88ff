"""Application entrypoint."""

from __future__ import annotations

import logging
import sys
from typing import Any

from auto_paste import ClipboardTextInjector
from channel import EventChannel
from config import JsonPreferenceStore, Settings
from errors import ERROR_MESSAGES, VoixError
from gestures import HotkeyInterpreter
from hotkey import HotkeyMonitor
from model_catalog import RECOMMENDED_MODEL_ID, get_model_spec, require_model_spec
from model_downloader import ModelDownloader
from model_resolver import ModelResolver
from model_store import ModelStore
from models import HotkeySignal, SessionState
from notifier import (
    AUDIO_LEVEL,
    DOWNLOAD_COMPLETE,
    DOWNLOAD_ERROR,
    DOWNLOAD_PROGRESS,
    HIDE_WINDOW,
    MODEL_REQUIRED,
    SHOW_WINDOW,
    STATE_CHANGED,
    TEXT_RESULT,
    StatusNotifier,
)
from overlay import StatusWindow
from recorder import SoundDeviceRecorder
from session_controller import SessionController
from transcriber import TranscriberBinder, whisper_factory

try:
    from PySide6.QtCore import QObject, QSize, Signal
    from PySide6.QtGui import QAction, QBrush, QColor, QIcon, QPainter, QPixmap
    from PySide6.QtWidgets import QApplication, QMenu, QMessageBox, QSystemTrayIcon
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

logger = logging.getLogger(__name__)


def _create_icon(color: str = "#888888", size: int = 22) -> QIcon:
    """Generate a simple circular tray icon with the given color."""
    pixmap = QPixmap(QSize(size, size))
    pixmap.fill(QColor(0, 0, 0, 0))  # transparent background
    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.Antialiasing, True)
    painter.setBrush(QBrush(QColor(color)))
    painter.setPen(QColor(color))
    painter.drawEllipse(2, 2, size - 4, size - 4)
    painter.end()
    return QIcon(pixmap)


ICON_COLORS = {
    SessionState.IDLE.value: "#888888",          # grey
    SessionState.LISTENING.value: "#FF4444",     # red
    SessionState.TRANSCRIBING.value: "#FFAA00",  # amber
    SessionState.TYPING.value: "#44AA44",        # green
}

STATUS_LABELS = {
    SessionState.IDLE.value: "Status: Idle",
    SessionState.LISTENING.value: "Status: Listening...",
    SessionState.TRANSCRIBING.value: "Status: Transcribing...",
    SessionState.TYPING.value: "Status: Typing...",
}


class UIBridge(QObject):
    event_signal = Signal(str, object)  # channel, payload
    error_signal = Signal(str)


class QtSurface:
    """Notifier surface that hands every event over to the Qt thread."""

    def __init__(self, bridge: UIBridge) -> None:
        self._bridge = bridge

    def send(self, channel: str, payload: Any = None) -> None:
        self._bridge.event_signal.emit(channel, payload)


class App:
    def __init__(self, settings: Settings) -> None:
        self.app = QApplication(sys.argv)
        self.app.setQuitOnLastWindowClosed(False)
        self.settings = settings
        self.overlay = StatusWindow()
        self.ui = UIBridge()
        self.ui.event_signal.connect(self._on_event_ui)
        self.ui.error_signal.connect(self._on_error_ui)

        self.notifier = StatusNotifier()
        self.notifier.register(QtSurface(self.ui))

        self.store = ModelStore(settings.models_dir, settings.legacy_models_dir)
        self.resolver = ModelResolver(self.store, JsonPreferenceStore())
        self.downloader = ModelDownloader(self.store, settings, notifier=self.notifier)
        self.controller = SessionController(
            recorder=SoundDeviceRecorder(on_level=lambda level: self.notifier.send(AUDIO_LEVEL, level)),
            transcribers=TranscriberBinder(
                self.store, whisper_factory(settings.whisper_binary, settings.language)
            ),
            injector=ClipboardTextInjector(),
            models=self.resolver,
            notifier=self.notifier,
            on_error=self._on_error,
        )
        self.interpreter = HotkeyInterpreter(
            get_state=lambda: self.controller.state,
            on_gesture=self.controller.handle_gesture,
        )
        self.hotkey_channel: EventChannel[HotkeySignal] = EventChannel(maxsize=32, name="hotkey")
        self.hotkey = HotkeyMonitor(hotkey_name=settings.hotkey)

        self.tray = QSystemTrayIcon()
        self.tray.setIcon(_create_icon(ICON_COLORS[SessionState.IDLE.value]))
        self.tray.setToolTip("Voix - double-tap the hotkey to dictate")
        self._status_action = QAction(STATUS_LABELS[SessionState.IDLE.value])
        self._models_menu = QMenu("Models")
        self._models_menu.aboutToShow.connect(self._rebuild_models_menu)
        self._setup_menu()
        self.tray.show()

    def _setup_menu(self) -> None:
        menu = QMenu()
        self._status_action.triggered.connect(self.overlay.show_near_cursor)
        menu.addAction(self._status_action)
        menu.addSeparator()
        menu.addMenu(self._models_menu)
        menu.addSeparator()
        quit_action = QAction("Quit", menu)
        quit_action.triggered.connect(self.quit)
        menu.addAction(quit_action)
        self.tray.setContextMenu(menu)
        self._menu = menu

    # ------------------------------------------------------------------
    # Models menu
    # ------------------------------------------------------------------

    def _rebuild_models_menu(self) -> None:
        menu = self._models_menu
        menu.clear()
        effective = self.resolver.effective_model()
        selected = self.resolver.selected_model()

        for state in self.resolver.list_models():
            spec = state.spec
            marker = " ✓" if spec.id == effective else ""
            if self.downloader.is_downloading(spec.id):
                title = f"{spec.label} (downloading...)"
            elif state.installed:
                title = f"{spec.label} (installed){marker}"
            else:
                title = f"{spec.label} ({spec.size_mb} MB)"
            sub = menu.addMenu(title)
            sub.setToolTipsVisible(True)
            sub.setToolTip(spec.description)
            if state.installed:
                use = sub.addAction("Use this model")
                use.setEnabled(spec.id != selected)
                use.triggered.connect(lambda _=False, mid=spec.id: self._select_model(mid))
                delete = sub.addAction("Delete")
                delete.triggered.connect(lambda _=False, mid=spec.id: self._delete_model(mid))
            else:
                download = sub.addAction(f"Download ({spec.size_mb} MB)")
                download.setEnabled(not self.downloader.is_downloading(spec.id))
                download.triggered.connect(lambda _=False, mid=spec.id: self._start_download(mid))

        menu.addSeparator()
        auto = menu.addAction("Use best installed automatically")
        auto.setEnabled(selected is not None)
        auto.triggered.connect(self.resolver.clear_selection)

    def _select_model(self, model_id: str) -> None:
        try:
            self.resolver.select_model(model_id)
        except VoixError as exc:
            self.overlay.show_error(exc.user_message())

    def _delete_model(self, model_id: str) -> None:
        spec = require_model_spec(model_id)
        answer = QMessageBox.question(None, "Delete model", f"Delete the {spec.label} model?")
        if answer != QMessageBox.Yes:
            return
        try:
            self.resolver.delete_model(model_id)
        except (VoixError, OSError) as exc:
            logger.exception("Failed to delete model %s", model_id)
            self.overlay.show_error(str(exc))

    def _start_download(self, model_id: str) -> None:
        self.tray.setToolTip(f"Voix - downloading {require_model_spec(model_id).label}...")
        self.downloader.download_async(model_id)

    def _prompt_model_download(self) -> None:
        if self.downloader.active_downloads():
            self.overlay.show_error("Speech model is still downloading")
            return
        spec = require_model_spec(RECOMMENDED_MODEL_ID)
        answer = QMessageBox.question(
            None,
            "Speech model required",
            f"No speech model is installed.\nDownload {spec.label} ({spec.size_mb} MB) now?",
        )
        if answer == QMessageBox.Yes:
            self._start_download(spec.id)

    # ------------------------------------------------------------------
    # Callbacks (called from worker threads → emit signals for UI thread)
    # ------------------------------------------------------------------

    def _on_error(self, code: str, message: str) -> None:
        logger.warning("%s: %s", code, message)
        self.ui.error_signal.emit(ERROR_MESSAGES.get(code, message))

    # ------------------------------------------------------------------
    # UI thread handlers (safe for Qt)
    # ------------------------------------------------------------------

    def _on_error_ui(self, msg: str) -> None:
        self.overlay.show_error(msg)

    def _on_event_ui(self, channel: str, payload: Any) -> None:
        if channel == STATE_CHANGED:
            self.tray.setIcon(_create_icon(ICON_COLORS.get(payload, "#888888")))
            self._status_action.setText(STATUS_LABELS.get(payload, str(payload)))
            self.overlay.set_state(payload)
        elif channel == SHOW_WINDOW:
            self.overlay.show_near_cursor()
        elif channel == HIDE_WINDOW:
            self.overlay.hide_with_delay(500)
        elif channel == TEXT_RESULT:
            self.overlay.set_text(payload)
        elif channel == AUDIO_LEVEL:
            self.overlay.set_level(payload)
        elif channel == MODEL_REQUIRED:
            self._prompt_model_download()
        elif channel == DOWNLOAD_PROGRESS:
            spec = get_model_spec(payload["modelId"])
            label = spec.label if spec else payload["modelId"]
            self.overlay.set_download_progress(label, payload["percent"], payload["downloadedBytes"])
        elif channel == DOWNLOAD_COMPLETE:
            spec = get_model_spec(payload["modelId"])
            self.tray.setToolTip("Voix - double-tap the hotkey to dictate")
            self.overlay.set_text(f"{spec.label if spec else payload['modelId']} installed")
            self.overlay.hide_with_delay(1500)
        elif channel == DOWNLOAD_ERROR:
            self.tray.setToolTip("Voix - model download failed")
            self.overlay.show_error(payload["message"])

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        self.hotkey_channel.subscribe(self.interpreter.handle)
        try:
            self.hotkey.start(self.hotkey_channel.publish)
        except Exception as exc:
            logger.exception("Hotkey monitor could not start")
            self.overlay.show_error(f"Hotkey disabled: {exc}")
        if self.resolver.effective_model() is None:
            self._prompt_model_download()
        return self.app.exec()

    def quit(self) -> None:
        self.hotkey.stop()
        self.hotkey_channel.close()
        self.interpreter.reset()
        self.controller.shutdown()
        self.downloader.close()
        self.app.quit()


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def main() -> int:
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    app = App(settings)
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
