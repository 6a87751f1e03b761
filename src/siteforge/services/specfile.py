"""Load site specs from JSON files."""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from siteforge_common import SiteSpec

from siteforge.errors import SiteforgeError, SpecValidationError

_SPEC_LIST = TypeAdapter(list[SiteSpec])


def load_specs(path: Path) -> list[SiteSpec]:
    """Read one spec object or a list of them."""
    try:
        raw = json.loads(path.read_text())
    except OSError as exc:
        raise SiteforgeError(f"Cannot read {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise SpecValidationError(str(path), f"invalid JSON: {exc}") from exc
    if isinstance(raw, dict):
        raw = [raw]
    try:
        return _SPEC_LIST.validate_python(raw)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or str(path)
        raise SpecValidationError(field, first["msg"]) from exc
