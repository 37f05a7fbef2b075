import os
import sys
from pathlib import Path
import pytest

# Ensure we can import modules from src/
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


@pytest.fixture()
def sandbox(tmp_path, monkeypatch):
    # Work in an isolated temp directory
    monkeypatch.chdir(tmp_path)
    # Prune environment to a minimal safe set
    safe_env = {
        "PATH": os.environ.get("PATH", "/usr/bin:/bin"),
        "HOME": str(tmp_path),
        "LANG": os.environ.get("LANG", "C"),
        "LC_ALL": os.environ.get("LC_ALL", "C"),
        "PWD": str(tmp_path),
    }
    monkeypatch.delenv("PIPESH_TRACE", raising=False)
    monkeypatch.delenv("PIPESH_PROMPT", raising=False)
    return tmp_path, safe_env


@pytest.fixture()
def session(sandbox):
    from ops import ShellSession
    tmp_path, safe_env = sandbox
    sess = ShellSession(cwd=tmp_path, inherit_env=False)
    sess.env.update(safe_env)
    return sess
