"""Lights app.

A small voice app used by the default configuration and by the tests.  It
switches and colours lights in a fixed set of rooms and shows every kind of
parameter type the app server deals with: an enum, a list filled at load
time, named values and an open-ended number.
"""

from __future__ import annotations

from typing import Any, Dict

from apps.voice_app import AppBase, ClientContext, FunctionIntent, HTTPError
from apps.voice_app.datatypes import (
    EnumDataType,
    ListDataType,
    NamedValuesDataType,
    NumberDataType,
)


ROOMS = ["kitchen", "living room", "bedroom"]

_RESPONSES = {
    "en": {
        "switched": "Turned the {room} light {state}.",
        "colour": "The {room} light is now {color}.",
        "dimmed": "Dimmed the {room} light to {level} percent.",
    },
    "de": {
        "switched": "Licht im Raum {room} ist jetzt {state}.",
        "colour": "Das Licht im Raum {room} ist jetzt {color}.",
        "dimmed": "Licht im Raum {room} auf {level} Prozent gedimmt.",
    },
}


class LightsApp(AppBase):
    """Keeps the light state of each room in memory."""

    def __init__(self) -> None:
        self.rooms = ListDataType("room")
        self.state_type = EnumDataType("state", ["on", "off"])
        self.colors = NamedValuesDataType(
            "color", {"red": "#ff0000", "blue": "#0000ff", "warm white": "#ffd8a8"}
        )
        self.level = NumberDataType("percent")
        self.lights: Dict[str, Dict[str, Any]] = {}
        super().__init__(
            "lights",
            [
                FunctionIntent(
                    "switch",
                    self.switch,
                    ["turn the {room} light {state}", "switch {state} the light in the {room}"],
                    {"room": self.rooms, "state": self.state_type},
                ),
                FunctionIntent(
                    "color",
                    self.set_color,
                    ["make the {room} light {color}"],
                    {"room": self.rooms, "color": self.colors},
                ),
                FunctionIntent(
                    "dim",
                    self.dim,
                    ["dim the {room} light to {level} percent"],
                    {"room": self.rooms, "level": self.level},
                ),
            ],
            languages=["en", "de"],
        )

    async def load(self, client) -> None:
        self.rooms.add_values(ROOMS)
        for room in ROOMS:
            self.lights.setdefault(room, {"on": False, "color": "#ffd8a8", "level": 100})

    def _light(self, args: Dict[str, Any]) -> Dict[str, Any]:
        room = args.get("room")
        if room not in self.lights:
            raise HTTPError(404, f"Unknown room {room!r}", code="unknown_room")
        return self.lights[room]

    @staticmethod
    def _say(context: ClientContext, key: str, **values: Any) -> str:
        texts = _RESPONSES.get(context.lang, _RESPONSES["en"])
        return texts[key].format(**values)

    def switch(self, args: Dict[str, Any], context: ClientContext) -> str:
        light = self._light(args)
        state = args.get("state")
        if state not in self.state_type.terms:
            raise HTTPError(400, f"Invalid state {state!r}", code="invalid_state")
        light["on"] = state == "on"
        return self._say(context, "switched", room=args["room"], state=state)

    async def set_color(self, args: Dict[str, Any], context: ClientContext) -> str:
        light = self._light(args)
        color = args.get("color")
        if color not in self.colors.terms:
            raise HTTPError(400, f"Invalid color {color!r}", code="invalid_color")
        light["color"] = self.colors.value_for(color)
        return self._say(context, "colour", room=args["room"], color=color)

    def dim(self, args: Dict[str, Any], context: ClientContext) -> str:
        light = self._light(args)
        try:
            level = int(args.get("level"))
        except (TypeError, ValueError):
            raise HTTPError(400, "Level must be a number", code="invalid_level")
        if not 0 <= level <= 100:
            raise HTTPError(400, "Level must be between 0 and 100", code="invalid_level")
        light["level"] = level
        light["on"] = level > 0
        return self._say(context, "dimmed", room=args["room"], level=level)


def create_app() -> LightsApp:
    return LightsApp()


__all__ = ["LightsApp", "create_app"]
