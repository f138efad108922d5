"""Repository-level integrity checks."""

from __future__ import annotations

import re
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
CONFLICT_PATTERN = re.compile(r"^(<<<<<<<|>>>>>>>) ", re.MULTILINE)
IGNORED_PARTS = {".git", "__pycache__", ".mypy_cache", ".pytest_cache", ".venv"}


def _python_sources() -> list[Path]:
    return [
        path
        for path in REPO_ROOT.rglob("*.py")
        if not any(part in IGNORED_PARTS for part in path.parts)
    ]


def test_sources_have_no_merge_conflict_markers() -> None:
    offending = [
        path.relative_to(REPO_ROOT)
        for path in _python_sources()
        if CONFLICT_PATTERN.search(path.read_text(encoding="utf-8", errors="ignore"))
    ]
    assert not offending, f"Conflict markers left in: {offending}"


def test_every_service_module_is_wired_into_the_app() -> None:
    """Each module under app/services must be imported by the app or a route."""

    wiring = "\n".join(
        path.read_text(encoding="utf-8")
        for path in [REPO_ROOT / "app" / "main.py", *(REPO_ROOT / "app" / "routes").glob("*.py")]
    )
    unused = [
        path.stem
        for path in (REPO_ROOT / "app" / "services").glob("[!_]*.py")
        if f"services.{path.stem} import" not in wiring
    ]
    assert not unused, f"Service modules not used by the app: {unused}"


def test_every_route_module_is_registered() -> None:
    main_source = (REPO_ROOT / "app" / "main.py").read_text(encoding="utf-8")
    for path in (REPO_ROOT / "app" / "routes").glob("[!_]*.py"):
        assert f"register_{path.stem}_routes(fastapi_app)" in main_source, path.name


def test_model_and_service_methods_are_all_called() -> None:
    """Public methods on the data layer and services must have a caller."""

    sources = [REPO_ROOT / "app" / "database.py", REPO_ROOT / "app" / "db_models.py"]
    sources += sorted((REPO_ROOT / "app" / "services").glob("[!_]*.py"))
    method_pattern = re.compile(r"^    (?:async )?def ([a-z]\w*)\(", re.MULTILINE)
    corpus = "\n".join(path.read_text(encoding="utf-8") for path in _python_sources())
    unused = [
        f"{path.stem}.{name}"
        for path in sources
        for name in method_pattern.findall(path.read_text(encoding="utf-8"))
        if not re.search(rf"\.{name}\b", corpus)
    ]
    assert not unused, f"Methods nothing calls: {unused}"
