"""File for tests."""

from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
import yaml

from console import ScriptedConsole
from processor import ControlUnit, Datapath


def pytest_configure(config: Any) -> None:
    """Configure the tests."""
    config.addinivalue_line(
        "markers",
        "golden_test(pattern): parameterize test with YAML programs matching pattern",
    )


def _iter_marker_patterns(node: Any) -> Iterator[str]:
    """Yield pattern strings from golden_test markers on `node`."""
    for m in node.iter_markers(name="golden_test"):
        if m.args:
            yield m.args[0]
        else:
            yield "golden/*.yaml"


def load_golden_record(p: Path) -> dict[str, Any]:
    """Load one golden YAML file.

    A file that fails to parse, or does not hold a mapping, is returned as a
    record carrying `__yaml_load_error__` so that its test case fails instead
    of breaking collection.
    """
    try:
        with p.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        data = {"__yaml_load_error__": str(e)}
    if not isinstance(data, dict):
        data = {"__yaml_load_error__": f"expected a mapping, got {type(data).__name__}"}
    data.setdefault("__path__", str(p))
    return data


def pytest_generate_tests(metafunc: Any) -> None:
    """Generate tests (parametrization) from YAML golden programs."""
    if "golden" not in metafunc.fixturenames:
        return

    patterns: list[str] = list(_iter_marker_patterns(metafunc.definition))
    if not patterns:
        patterns = ["golden/*.yaml"]

    root = Path(metafunc.config.rootpath)

    files: list[Path] = []
    for pat in patterns:
        files.extend(sorted(root.glob(pat)))

    params: list[dict[str, Any]] = [load_golden_record(p) for p in files]
    ids: list[str] = [p.stem for p in files]

    metafunc.parametrize("golden", params, ids=ids)


@pytest.fixture
def machine() -> Callable[..., tuple[Datapath, ControlUnit, ScriptedConsole]]:
    """Factory: load words at 0x3000 and return (datapath, control unit, console)."""

    def _make(
        words: list[int],
        stdin: str | list[int] | None = None,
        **dp_kwargs: Any,
    ) -> tuple[Datapath, ControlUnit, ScriptedConsole]:
        dp = Datapath(**dp_kwargs)
        dp.load_words(words)
        console = ScriptedConsole(stdin)
        return dp, ControlUnit(dp, console), console

    return _make
