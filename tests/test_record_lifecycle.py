from __future__ import annotations

import json
from typing import Any, Dict

import pytest

from arroz_trace.ledger.schemas import Secado, Tolva
from arroz_trace.runtime.contract import TraceabilityContract
from arroz_trace.runtime.errors import AlreadyExists, CorruptRecord, NotFound

Json = Dict[str, Any]


def _tolva(record_id: str, **fields: Any) -> Json:
    base: Json = {"id": record_id, "fecha": "2024-05-01", "variedad": "Indica", "chofer": "Juan"}
    base.update(fields)
    return base


def test_register_then_get_defaults_doc_type(contract: TraceabilityContract, tolva_doc: Json) -> None:
    contract.tolva.register(json.dumps(tolva_doc))

    got = contract.tolva.get("T1").to_json()
    expected = dict(tolva_doc, docType="tolva", observacion="")
    assert got == expected


def test_register_twice_fails_and_keeps_first(contract: TraceabilityContract, tolva_doc: Json) -> None:
    contract.tolva.register(json.dumps(tolva_doc))
    before = contract.store.get_state("TOLVA_T1")

    second = dict(tolva_doc, chofer="Pedro")
    with pytest.raises(AlreadyExists):
        contract.tolva.register(json.dumps(second))

    assert contract.store.get_state("TOLVA_T1") == before
    assert contract.tolva.get("T1").driver == "Juan"


def test_edit_unknown_id_fails_and_stays_absent(contract: TraceabilityContract) -> None:
    with pytest.raises(NotFound):
        contract.tolva.edit(json.dumps(_tolva("ghost")))

    assert contract.tolva.exists("ghost") is False
    assert contract.store.get_state("TOLVA_ghost") is None


def test_edit_replaces_whole_document(contract: TraceabilityContract) -> None:
    contract.tolva.register(json.dumps(_tolva("T9", origen="Campo B", observacion="primera carga")))
    contract.tolva.edit(json.dumps({"id": "T9", "chofer": "Ana"}))

    doc = contract.tolva.get("T9")
    assert doc.driver == "Ana"
    # omitted fields are not carried over
    assert doc.origin == ""
    assert doc.note == ""
    assert doc.variety == ""
    assert doc.doc_type == "tolva"


def test_delete_then_get_and_delete_again(contract: TraceabilityContract, tolva_doc: Json) -> None:
    contract.tolva.register(json.dumps(tolva_doc))
    contract.tolva.delete("T1")

    with pytest.raises(NotFound):
        contract.tolva.get("T1")
    with pytest.raises(NotFound):
        contract.tolva.delete("T1")


def test_exists_tracks_lifecycle(contract: TraceabilityContract, tolva_doc: Json) -> None:
    assert contract.tolva.exists("T1") is False
    contract.tolva.register(json.dumps(tolva_doc))
    assert contract.tolva.exists("T1") is True
    contract.tolva.delete("T1")
    assert contract.tolva.exists("T1") is False


def test_list_returns_every_registered_document(contract: TraceabilityContract) -> None:
    docs = [_tolva(f"T{i}", nOrden=str(100 + i), horaInicio=f"0{i}:00") for i in range(1, 6)]
    for d in docs:
        contract.tolva.register(json.dumps(d))

    listed = contract.tolva.list()
    assert len(listed) == len(docs)

    by_id = {d.id: d for d in listed}
    for d in docs:
        got = by_id[d["id"]].to_json()
        for k, v in d.items():
            assert got[k] == v


def test_list_keeps_entities_apart(contract: TraceabilityContract, tolva_doc: Json, secado_doc: Json) -> None:
    contract.secado.register(json.dumps(secado_doc))

    secados = contract.secado.list()
    assert [d.id for d in secados] == ["S1"]
    assert isinstance(secados[0], Secado)
    assert contract.tolva.list() == []

    contract.tolva.register(json.dumps(tolva_doc))
    assert [d.id for d in contract.tolva.list()] == ["T1"]
    assert isinstance(contract.tolva.list()[0], Tolva)
    assert [d.id for d in contract.secado.list()] == ["S1"]


def test_list_on_empty_namespace_is_empty(contract: TraceabilityContract) -> None:
    assert contract.tolva.list() == []
    assert contract.secado.list() == []


def test_same_id_in_both_entities_is_independent(contract: TraceabilityContract) -> None:
    contract.tolva.register(json.dumps(_tolva("X1")))
    contract.secado.register(json.dumps({"id": "X1", "destino": "Silo 2"}))

    assert contract.tolva.get("X1").doc_type == "tolva"
    assert contract.secado.get("X1").destination == "Silo 2"

    contract.tolva.delete("X1")
    assert contract.secado.exists("X1") is True


def test_secado_round_trips_numbers(contract: TraceabilityContract, secado_doc: Json) -> None:
    contract.secado.register(json.dumps(secado_doc))

    got = contract.secado.get("S1").to_json()
    assert got["volumenkgr"] == 500.0
    assert got["humgrano"] == 18.5
    assert got["var"] == 0.2
    assert got["docType"] == "secado"


def test_reregister_after_delete(contract: TraceabilityContract, tolva_doc: Json) -> None:
    contract.tolva.register(json.dumps(tolva_doc))
    contract.tolva.delete("T1")
    contract.tolva.register(json.dumps(dict(tolva_doc, chofer="Luis")))

    assert contract.tolva.get("T1").driver == "Luis"


def test_mapping_payload_accepts_attribute_names(contract: TraceabilityContract) -> None:
    contract.tolva.register({"id": "T5", "driver": "Marta", "variety": "Japonica"})

    doc = contract.tolva.get("T5")
    assert doc.driver == "Marta"
    assert doc.to_json()["variedad"] == "Japonica"


def test_stored_value_uses_wire_names(contract: TraceabilityContract, tolva_doc: Json) -> None:
    contract.tolva.register(json.dumps(tolva_doc))

    stored = json.loads(contract.store.get_state("TOLVA_T1"))
    assert stored["docType"] == "tolva"
    assert stored["nChapa"] == "ABC123"
    assert "plate_number" not in stored


@pytest.mark.parametrize(
    "raw",
    [
        b"\x00not json",
        json.dumps({"docType": "tolva", "id": 123}).encode(),
        json.dumps({"docType": "tolva", "id": "X", "fecha": ["2024-05-01"]}).encode(),
    ],
)
def test_get_of_unparseable_value_is_corrupt_record(contract: TraceabilityContract, raw: bytes) -> None:
    contract.store.put_state("TOLVA_X", raw)

    with pytest.raises(CorruptRecord) as ei:
        contract.tolva.get("X")

    assert ei.value.code == "corrupt_record"
    assert ei.value.details["key"] == "TOLVA_X"
    # the stored bytes are left as they were
    assert contract.store.get_state("TOLVA_X") == raw
