"""Build the capability descriptor of a voice app.

The descriptor lists every intent with its sample commands and slots, plus
the legal values of each finite data type the intents use.  It is rebuilt
from the loaded app on every registration, so list types the app filled at
load time are sent with their current values.
"""

from __future__ import annotations

from typing import Any, Dict, List

from apps.voice_app import AppBase
from apps.voice_app.datatypes import DataType, FiniteDataType
from lib.contracts.app_server import (
    CapabilityDescriptor,
    IntentJSON,
    InteractionModel,
    LanguageModel,
    SlotJSON,
    TypeJSON,
    TypeValueJSON,
    ValueName,
)
from lib.utils.validation import ensure


def _distinct_types(app: AppBase) -> List[DataType]:
    # Identity, not id: two different types may share a display name.
    seen: Dict[int, DataType] = {}
    for intent in app.intents.values():
        for datatype in intent.parameters.values():
            seen.setdefault(id(datatype), datatype)
    return list(seen.values())


def build_capability_descriptor(app: AppBase) -> CapabilityDescriptor:
    ensure(isinstance(app, AppBase), "App has wrong type", TypeError)

    intents = [
        IntentJSON(
            name=intent.id,
            samples=list(intent.commands),
            slots=[SlotJSON(name=name, type=datatype.id) for name, datatype in intent.parameters.items()],
        )
        for intent in app.intents.values()
    ]
    types = [
        TypeJSON(
            name=datatype.id,
            values=[TypeValueJSON(id=term, name=ValueName(value=term)) for term in datatype.terms],
        )
        for datatype in _distinct_types(app)
        if isinstance(datatype, FiniteDataType)
    ]
    return CapabilityDescriptor(
        interaction_model=InteractionModel(
            language_model=LanguageModel(invocation_name=app.id, intents=intents, types=types)
        )
    )


def intents_json_with_values(app: AppBase) -> Dict[str, Any]:
    """Return the descriptor of ``app`` as a JSON ready ``dict``."""

    return build_capability_descriptor(app).model_dump(by_alias=True)


__all__ = ["build_capability_descriptor", "intents_json_with_values"]
