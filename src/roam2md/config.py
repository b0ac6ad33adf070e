"""Roam2mdConfig: optional roam2md.toml for repeated runs.

Looked up in the working directory and its parents. Every value can also
be given on the command line, which wins over the file.

roam2md.toml example:

    [roam2md]
    db = "~/.emacs.d/org-roam.db"
    target_dir = "~/vault"

    [render]
    emacs = "emacs"
    init_file = "~/.emacs.d/init.el"
    timeout = 120               # seconds before a hung emacs is killed
    backend = "gfm"
    requires = ["ox-gfm"]

    [export]
    frontmatter = false         # prepend roam_id/aliases/refs YAML
    max_name_length = 200

    [sanitize]                  # merged over the built-in table; "" deletes
    "/" = " over "
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from roam2md.identity import DEFAULT_MAX_LENGTH, DEFAULT_REPLACEMENTS
from roam2md.renderer import DEFAULT_TIMEOUT

CONFIG_FILENAME = "roam2md.toml"


@dataclass
class RenderConfig:
    emacs: str = "emacs"
    init_file: str = "~/.emacs.d/init.el"    # "" = run emacs without an init file
    timeout: float = DEFAULT_TIMEOUT
    backend: str = "gfm"
    requires: list[str] = field(default_factory=lambda: ["ox-gfm"])


@dataclass
class ExportConfig:
    frontmatter: bool = False
    max_name_length: int = DEFAULT_MAX_LENGTH


@dataclass
class Roam2mdConfig:
    """Resolved configuration; paths are expanded but may not exist."""

    root: Path                                # directory holding roam2md.toml (or cwd)
    db: Path | None = None
    target_dir: Path | None = None
    render: RenderConfig = field(default_factory=RenderConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    replacements: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_REPLACEMENTS))

    @property
    def path(self) -> Path:
        return self.root / CONFIG_FILENAME


def _path(value: Any, root: Path) -> Path | None:
    if not value:
        return None
    p = Path(str(value)).expanduser()
    return p if p.is_absolute() else root / p


def _find_root(start: Path) -> Path:
    """Walk upward from start looking for roam2md.toml."""
    for directory in (start, *start.parents):
        if (directory / CONFIG_FILENAME).exists():
            return directory
    return start


def load_config(root: Path | str | None = None) -> Roam2mdConfig:
    """Load roam2md.toml from root (or search upward from cwd if root is None)."""
    root_path = _find_root(Path(root).expanduser() if root else Path.cwd())
    config_path = root_path / CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_path.exists():
        with config_path.open("rb") as f:
            raw = tomllib.load(f)

    main = raw.get("roam2md", {})
    render = raw.get("render", {})
    export = raw.get("export", {})

    replacements = dict(DEFAULT_REPLACEMENTS)
    for old, new in raw.get("sanitize", {}).items():
        replacements[str(old)] = str(new)

    return Roam2mdConfig(
        root=root_path,
        db=_path(main.get("db"), root_path),
        target_dir=_path(main.get("target_dir"), root_path),
        render=RenderConfig(
            emacs=str(render.get("emacs", "emacs")),
            init_file=str(render.get("init_file", "~/.emacs.d/init.el")),
            timeout=float(render.get("timeout", DEFAULT_TIMEOUT)),
            backend=str(render.get("backend", "gfm")),
            requires=[str(r) for r in render.get("requires", ["ox-gfm"])],
        ),
        export=ExportConfig(
            frontmatter=bool(export.get("frontmatter", False)),
            max_name_length=int(export.get("max_name_length", DEFAULT_MAX_LENGTH)),
        ),
        replacements=replacements,
    )


def init_config(root: Path, db: str = "", target_dir: str = "") -> Path:
    """Write a default roam2md.toml at root. Raises if already exists."""
    config_path = root / CONFIG_FILENAME
    if config_path.exists():
        msg = f"{CONFIG_FILENAME} already exists at {config_path}"
        raise FileExistsError(msg)

    content = f"""\
[roam2md]
db = "{db or '~/.emacs.d/org-roam.db'}"
target_dir = "{target_dir or '~/vault'}"

[render]
# emacs = "emacs"
# init_file = "~/.emacs.d/init.el"   # "" to start emacs without your config
# timeout = {DEFAULT_TIMEOUT:g}                  # seconds per node
# backend = "gfm"
# requires = ["ox-gfm"]

[export]
# frontmatter = false     # prepend roam_id / aliases / refs as YAML
# max_name_length = {DEFAULT_MAX_LENGTH}

# Extra title -> file name replacements, merged over the built-in table.
# [sanitize]
# "/" = " over "
# "&" = "and"
"""
    config_path.write_text(content)
    return config_path
