import sys

from PyQt5.QtCore import pyqtSignal, QObject


class DebugLogger(QObject):
    """
    Global Qt-based debug logger.

    Usage (anywhere in the app):

        from loggers import DEBUG_LOGGER

        DEBUG_LOGGER.log_message("[BrowsingSession] opening page...")

    The GUI hooks this logger to its Log pane. The CLI sets ``echo`` so
    lines also go to stderr.
    """
    message_signal = pyqtSignal(str)

    def __init__(self, echo: bool = False):
        super().__init__()
        self.echo = echo

    def log_message(self, msg: str):
        line = str(msg).rstrip()
        if self.echo:
            print(line, file=sys.stderr)
        self.message_signal.emit(line)


DEBUG_LOGGER = DebugLogger()
