import pytest
import sys
from pathlib import Path

# Ensure src/ is in the python path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

@pytest.fixture
def root_dir(tmp_path):
    """
    Returns a temporary directory to act as the plugin project root for tests.
    """
    return tmp_path


@pytest.fixture
def project_dir(tmp_path):
    """
    A plugin project laid out the way the default settings expect:
    sources, build output, server jar and assets.
    """
    (tmp_path / "app" / "src").mkdir(parents=True)
    (tmp_path / "app" / "build" / "libs").mkdir(parents=True)
    (tmp_path / "server" / "Server").mkdir(parents=True)
    (tmp_path / "server" / "Server" / "HytaleServer.jar").write_bytes(b"jar")
    (tmp_path / "Assets.zip").write_bytes(b"zip")
    return tmp_path


@pytest.fixture
def python_script(tmp_path):
    """
    Writes a small Python script and returns the argv that runs it.
    """
    def _make(name: str, body: str) -> list[str]:
        script = tmp_path / f"{name}.py"
        script.write_text(body)
        return [sys.executable, str(script)]

    return _make
