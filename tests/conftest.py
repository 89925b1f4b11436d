from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict

import pytest

# Ensure local "src/" takes precedence over any globally-installed "arroz_trace" package.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

src_str = str(SRC)
if src_str not in sys.path:
    sys.path.insert(0, src_str)

from arroz_trace.runtime.contract import TraceabilityContract  # noqa: E402
from arroz_trace.runtime.sqlite_db import SqliteDB, SqliteStateStore  # noqa: E402
from arroz_trace.runtime.state_store import MemoryStateStore  # noqa: E402

Json = Dict[str, Any]


@pytest.fixture(autouse=True)
def _test_mode(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ARROZ_MODE", "test")
    monkeypatch.setenv("ARROZ_SQLITE_SYNCHRONOUS", "OFF")


@pytest.fixture
def memory_store() -> MemoryStateStore:
    return MemoryStateStore()


@pytest.fixture
def sqlite_store(tmp_path: Path) -> SqliteStateStore:
    return SqliteStateStore(db=SqliteDB(path=str(tmp_path / "arroz_test.db")))


@pytest.fixture(params=["memory", "sqlite"])
def store(request: pytest.FixtureRequest, tmp_path: Path):
    if request.param == "memory":
        return MemoryStateStore()
    return SqliteStateStore(db=SqliteDB(path=str(tmp_path / "arroz_test.db")))


@pytest.fixture
def contract(store) -> TraceabilityContract:
    return TraceabilityContract(store)


@pytest.fixture
def tolva_doc() -> Json:
    return {
        "id": "T1",
        "fecha": "2024-05-01",
        "nOrden": "100",
        "nChapa": "ABC123",
        "chofer": "Juan",
        "origen": "Campo A",
        "variedad": "Indica",
        "horaInicio": "08:00",
        "horaSalida": "08:30",
    }


@pytest.fixture
def secado_doc() -> Json:
    return {
        "id": "S1",
        "fecha": "2024-05-01",
        "hora": "09:00",
        "nrosecada": "1",
        "volumenkgr": 500.0,
        "tempAire": 60.0,
        "tempGrano": 40.0,
        "humgrano": 18.5,
        "var": 0.2,
        "destino": "Silo 1",
    }
