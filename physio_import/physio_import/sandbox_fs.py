from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from .errors import SandboxPathError
from .schema import WizardState


SANDBOX_DIRS = ("logs", "exports", "inputs", "sessions")


def resolve_in_sandbox(root: str | Path, rel: str | Path) -> Path:
    root_path = Path(root).resolve()
    rel_path = (root_path / rel).resolve()
    try:
        rel_path.relative_to(root_path)
    except ValueError:
        raise SandboxPathError(f"path escapes sandbox: {rel}")
    return rel_path


def ensure_dirs(root: str | Path) -> dict[str, Path]:
    root_path = Path(root).resolve()
    dirs = {"root": root_path}
    for name in SANDBOX_DIRS:
        dirs[name] = resolve_in_sandbox(root_path, name)
    for p in dirs.values():
        p.mkdir(parents=True, exist_ok=True)
    return dirs


def write_json(root: str | Path, rel: str | Path, obj: Any) -> Path:
    """Pretty-printed JSON at a sandbox-relative path; parent directories are created."""
    target = resolve_in_sandbox(root, rel)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(obj, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    return target


def append_jsonl(root: str | Path, rel: str | Path, record: Any) -> Path:
    """Append one compact JSON record per line (audit logs)."""
    target = resolve_in_sandbox(root, rel)
    target.parent.mkdir(parents=True, exist_ok=True)
    line = json.dumps(record, ensure_ascii=False, separators=(",", ":"))
    with target.open("a", encoding="utf-8") as f:
        f.write(line + "\n")
    return target


def session_path(name: str) -> str:
    return f"sessions/{name}.json"


def save_session(root: str | Path, name: str, state: WizardState) -> Path:
    return write_json(root, session_path(name), state.to_wire())


def load_session(root: str | Path, name: str) -> WizardState:
    target = resolve_in_sandbox(root, session_path(name))
    if not target.exists():
        raise FileNotFoundError(f"session not found: {name} (run 'analyze' first)")
    return WizardState.model_validate_json(target.read_text(encoding="utf-8"))
