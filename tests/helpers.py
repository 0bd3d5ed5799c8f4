from __future__ import annotations

import importlib
import os
import pathlib
import subprocess
import sys
import textwrap
from types import ModuleType
from typing import Dict

from codecgen import generate, load_directory

REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]


def write_sources(root: pathlib.Path, files: Dict[str, str]) -> None:
    for rel, text in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(text).strip() + "\n", encoding="utf-8")


def generate_code(directory: pathlib.Path, typename: str, override: str = "") -> str:
    result = generate(load_directory(directory), typename, override, source_label="test")
    if result.error is not None:
        raise result.error
    return result.code


def run_cli(*args: str, cwd: pathlib.Path) -> subprocess.CompletedProcess[str]:
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(p for p in (str(REPO_ROOT), env.get("PYTHONPATH", "")) if p)
    cmd = [sys.executable, "-m", "codecgen", *args]
    return subprocess.run(cmd, cwd=cwd, text=True, capture_output=True, env=env)


class ImportRoot:
    """Makes a directory importable and forgets everything imported from it on exit."""

    def __init__(self, root: pathlib.Path) -> None:
        self.root = root
        self._before: set = set()

    def __enter__(self) -> "ImportRoot":
        self._before = set(sys.modules)
        sys.path.insert(0, str(self.root))
        importlib.invalidate_caches()
        return self

    def __exit__(self, *exc: object) -> None:
        sys.path.remove(str(self.root))
        for name, module in list(sys.modules.items()):
            filename = getattr(module, "__file__", None) or ""
            if name not in self._before and filename.startswith(str(self.root)):
                del sys.modules[name]

    def load(self, name: str) -> ModuleType:
        return importlib.import_module(name)
