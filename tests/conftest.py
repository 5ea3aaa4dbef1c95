import os
import tempfile
from pathlib import Path

import pytest

from patch_editor import settings
from patch_editor.core import Graph

# patch_editor.api loads its settings on import; keep it out of the user config dir
os.environ.setdefault("PATCH_EDITOR_CONFIG", str(Path(tempfile.mkdtemp()) / "config.json"))


@pytest.fixture(autouse=True)
def _no_global_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "settings_manager", None)


@pytest.fixture
def graph() -> Graph:
    return Graph()
