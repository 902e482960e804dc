"""Wire models exchanged between the core and an app server."""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SlotJSON(BaseModel):
    name: str
    type: str


class IntentJSON(BaseModel):
    name: str
    samples: List[str] = Field(default_factory=list)
    slots: List[SlotJSON] = Field(default_factory=list)


class ValueName(BaseModel):
    value: str


class TypeValueJSON(BaseModel):
    id: str
    name: ValueName


class TypeJSON(BaseModel):
    """One finite data type with all of its legal values."""

    name: str
    values: List[TypeValueJSON] = Field(default_factory=list)


class LanguageModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    invocation_name: str = Field(alias="invocationName")
    intents: List[IntentJSON] = Field(default_factory=list)
    types: List[TypeJSON] = Field(default_factory=list)


class InteractionModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    language_model: LanguageModel = Field(alias="languageModel")


class CapabilityDescriptor(BaseModel):
    """Capability description sent to the core at registration."""

    model_config = ConfigDict(populate_by_name=True)

    interaction_model: InteractionModel = Field(alias="interactionModel")


class RegistrationRequest(BaseModel):
    """Body of ``PUT <core>/app/http``."""

    model_config = ConfigDict(populate_by_name=True)

    app_id: str = Field(alias="appID")
    url: str
    auth_key: str = Field(alias="authKey")
    intents: CapabilityDescriptor


class IntentCallRequest(BaseModel):
    """Body the core posts to ``/<appId>/<intentId>``."""

    args: Dict[str, Any] = Field(default_factory=dict)


class IntentCallResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    response_text: str = Field(alias="responseText")


class ErrorResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    error_message: str = Field(alias="errorMessage")
    error_code: Optional[str] = Field(default=None, alias="errorCode")
