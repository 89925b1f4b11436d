from __future__ import annotations

"""Document schemas for the two recorded stages of the rice chain.

Wire documents use the historical JSON names (`fecha`, `nOrden`, ...); the
Python attributes are English. Either spelling is accepted on input, the JSON
names are always written on output.

Parsing mirrors a typed JSON decoder:
  - unknown fields are ignored
  - omitted fields (and explicit nulls) take the zero value
  - a value of the wrong JSON type fails the parse
  - NaN and Infinity fail the parse
"""

from typing import Any, ClassVar, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from arroz_trace.ledger.constants import (
    SECADO_DOC_TYPE,
    SECADO_ENTITY,
    SECADO_KEY_PREFIX,
    TOLVA_DOC_TYPE,
    TOLVA_ENTITY,
    TOLVA_KEY_PREFIX,
)

Json = Dict[str, Any]


class RecordDocument(BaseModel):
    """Base shape shared by every stored document."""

    DOC_TYPE: ClassVar[str] = ""
    KEY_PREFIX: ClassVar[str] = ""
    ENTITY: ClassVar[str] = ""

    doc_type: str = Field(default="", alias="docType")
    id: str = Field(default="", alias="id")

    # NaN/Infinity are not JSON and would be written back as null.
    model_config = {"populate_by_name": True, "extra": "ignore", "strict": True, "allow_inf_nan": False}

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data

    @classmethod
    def wire_name(cls, name: str) -> Optional[str]:
        """Map an attribute or JSON name to the JSON name, None if unknown."""
        for attr, info in cls.model_fields.items():
            alias = info.alias or attr
            if name == attr or name == alias:
                return alias
        return None

    @classmethod
    def wire_names(cls) -> List[str]:
        return [info.alias or attr for attr, info in cls.model_fields.items()]

    def to_json(self) -> Json:
        return self.model_dump(by_alias=True)

    def to_json_bytes(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode("utf-8")

    def problems(self) -> List[str]:
        """Field-level checks beyond what the type system enforces."""
        return []


class Tolva(RecordDocument):
    """One truckload delivered to the intake hopper."""

    DOC_TYPE: ClassVar[str] = TOLVA_DOC_TYPE
    KEY_PREFIX: ClassVar[str] = TOLVA_KEY_PREFIX
    ENTITY: ClassVar[str] = TOLVA_ENTITY

    date: str = Field(default="", alias="fecha")  # yyyy-mm-dd
    order_number: str = Field(default="", alias="nOrden")
    plate_number: str = Field(default="", alias="nChapa")
    driver: str = Field(default="", alias="chofer")
    origin: str = Field(default="", alias="origen")
    variety: str = Field(default="", alias="variedad")
    start_time: str = Field(default="", alias="horaInicio")  # HH:MM
    end_time: str = Field(default="", alias="horaSalida")  # HH:MM
    note: str = Field(default="", alias="observacion")


class Secado(RecordDocument):
    """One drying-batch measurement."""

    DOC_TYPE: ClassVar[str] = SECADO_DOC_TYPE
    KEY_PREFIX: ClassVar[str] = SECADO_KEY_PREFIX
    ENTITY: ClassVar[str] = SECADO_ENTITY

    date: str = Field(default="", alias="fecha")
    time: str = Field(default="", alias="hora")
    batch_number: str = Field(default="", alias="nrosecada")
    volume_kg: float = Field(default=0.0, alias="volumenkgr")
    air_temp: float = Field(default=0.0, alias="tempAire")
    grain_temp: float = Field(default=0.0, alias="tempGrano")
    grain_humidity: float = Field(default=0.0, alias="humgrano")
    variance: float = Field(default=0.0, alias="var")
    destination: str = Field(default="", alias="destino")
    note: str = Field(default="", alias="observacion")

    def problems(self) -> List[str]:
        out: List[str] = []
        if self.volume_kg < 0:
            out.append("volumenkgr must be >= 0")
        return out
