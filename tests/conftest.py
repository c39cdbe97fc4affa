import os
import sys
import pytest
from PyQt6.QtCore import QCoreApplication

from services.data_context import DataContext
from services.sequence_data_service import SequenceDataService


@pytest.fixture(scope="session", autouse=True)
def qapp():
    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication(sys.argv)
    return app


@pytest.fixture
def sequence():
    return SequenceDataService(DataContext())
