"""Template manifest loading and placeholder rendering."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml  # type: ignore[import-not-found]

from .errors import TemplateError

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_TEMPLATES_DIR = PACKAGE_ROOT / "templates"
MANIFEST_NAME = "manifest.yml"
PLACEHOLDER_PATTERN = re.compile(r"\{\{([A-Z_]+)\}\}")
KNOWN_CAPTURES = {"git_log", "git_status"}


def render_template(text: str, values: Mapping[str, str]) -> str:
    """Replace ``{{KEY}}`` placeholders; unknown keys are left untouched."""

    def _swap(match: re.Match[str]) -> str:
        key = match.group(1)
        return values[key] if key in values else match.group(0)

    return PLACEHOLDER_PATTERN.sub(_swap, text)


@dataclass(frozen=True)
class TemplateDocument:
    name: str
    template: str
    capture: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, section: str) -> "TemplateDocument":
        name = data.get("name")
        template = data.get("template") or name
        if not name or not template:
            raise TemplateError(f"{section}: every document needs a name")
        capture = data.get("capture")
        if capture is not None and capture not in KNOWN_CAPTURES:
            raise TemplateError(
                f"{section}.{name}: unknown capture '{capture}' (expected one of {sorted(KNOWN_CAPTURES)})"
            )
        return cls(name=str(name), template=str(template), capture=capture)


@dataclass(frozen=True)
class TemplateManifest:
    """Which documents go into ``context/`` and ``artifacts/``, and the README."""

    root: Path
    readme: str
    context: list[TemplateDocument] = field(default_factory=list)
    artifacts: list[TemplateDocument] = field(default_factory=list)

    @classmethod
    def load(cls, templates_dir: Path | None = None) -> "TemplateManifest":
        root = templates_dir or DEFAULT_TEMPLATES_DIR
        manifest_path = root / MANIFEST_NAME
        if not manifest_path.exists():
            raise TemplateError(f"Template manifest missing at {manifest_path}")
        data = yaml.safe_load(manifest_path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise TemplateError(f"{manifest_path} must contain a mapping")
        return cls(
            root=root,
            readme=str(data.get("readme") or "README.md"),
            context=[
                TemplateDocument.from_mapping(item, section="context")
                for item in data.get("context") or []
            ],
            artifacts=[
                TemplateDocument.from_mapping(item, section="artifacts")
                for item in data.get("artifacts") or []
            ],
        )

    def read(self, template: str) -> str:
        path = self.root / template
        if not path.is_file():
            raise TemplateError(f"Template {template} missing under {self.root}")
        return path.read_text(encoding="utf-8")

    def render(self, template: str, values: Mapping[str, str]) -> str:
        return render_template(self.read(template), values)
