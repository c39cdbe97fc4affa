from PyQt6.QtCore import QObject, pyqtSignal


class DataContext(QObject):
    """Application-wide pub/sub bus for sequence and run events."""
    steps_changed = pyqtSignal(dict)
    run_state_changed = pyqtSignal(dict)
