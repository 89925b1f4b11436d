from __future__ import annotations

import json

import pytest

from arroz_trace.runtime.contract import ROUTES, TraceabilityContract
from arroz_trace.runtime.errors import InvalidPayload, NotFound, UnknownFunction


def test_function_names_cover_both_entities() -> None:
    names = set(TraceabilityContract.functions())
    for entity, plural in (("Tolva", "Tolvas"), ("Secado", "Secados")):
        assert {
            f"Registrar{entity}",
            f"Editar{entity}",
            f"Eliminar{entity}",
            f"Consultar{entity}",
            f"Listar{plural}",
            f"Buscar{plural}",
            f"{entity}Existe",
        } <= names
        assert ROUTES[f"Register{entity}"][1] == "register"
    assert len(names) == 28


def test_invoke_historical_names(contract: TraceabilityContract, tolva_doc) -> None:
    assert contract.invoke("RegistrarTolva", json.dumps(tolva_doc)) is None
    assert contract.invoke("TolvaExiste", "T1") == "true"

    got = json.loads(contract.invoke("ConsultarTolva", "T1"))
    assert got["docType"] == "tolva"
    assert got["nOrden"] == "100"

    listed = json.loads(contract.invoke("ListarTolvas"))
    assert [d["id"] for d in listed] == ["T1"]

    found = json.loads(contract.invoke("BuscarTolvas", json.dumps({"variedad": "Indica"})))
    assert [d["id"] for d in found] == ["T1"]

    assert contract.invoke("EditarTolva", json.dumps(dict(tolva_doc, chofer="Pedro"))) is None
    assert json.loads(contract.invoke("ConsultarTolva", "T1"))["chofer"] == "Pedro"

    assert contract.invoke("EliminarTolva", "T1") is None
    assert contract.invoke("TolvaExiste", "T1") == "false"


def test_invoke_aliases(contract: TraceabilityContract, secado_doc) -> None:
    contract.invoke("RegisterSecado", json.dumps(secado_doc))

    assert contract.invoke("SecadoExists", "S1") == "true"
    assert json.loads(contract.invoke("GetSecado", "S1"))["destino"] == "Silo 1"
    assert [d["id"] for d in json.loads(contract.invoke("ListSecados"))] == ["S1"]
    assert json.loads(contract.invoke("SearchSecados", json.dumps({"destino": "Silo 9"}))) == []

    contract.invoke("DeleteSecado", "S1")
    with pytest.raises(NotFound):
        contract.invoke("GetSecado", "S1")


def test_empty_listing_is_json_array(contract: TraceabilityContract) -> None:
    assert contract.invoke("ListarSecados") == "[]"


def test_unknown_function(contract: TraceabilityContract) -> None:
    with pytest.raises(UnknownFunction) as ei:
        contract.invoke("BorrarTodo")
    assert ei.value.details == {"function": "BorrarTodo"}


def test_wrong_arg_count(contract: TraceabilityContract) -> None:
    with pytest.raises(InvalidPayload) as ei:
        contract.invoke("ConsultarTolva")
    assert ei.value.reason == "wrong_arg_count"

    with pytest.raises(InvalidPayload):
        contract.invoke("ListarTolvas", "extra")


def test_collection_lookup(contract: TraceabilityContract) -> None:
    assert contract.collection("tolva") is contract.tolva
    assert contract.collection("SECADO") is contract.secado
    assert contract.collection("molino") is None
    assert contract.tolva.event_name("Register") == "RegisterTolva"
