"""
Inline button payloads, parsed once when a callback query arrives.
"""

from dataclasses import dataclass

from .catalog import Category
from .errors import InvalidCallback


@dataclass(frozen=True)
class SwitchModel:
    pass


@dataclass(frozen=True)
class SelectCategory:
    category: Category


@dataclass(frozen=True)
class SelectModel:
    model_key: str


Action = SwitchModel | SelectCategory | SelectModel


def parse_callback(data: str | None) -> Action:
    if not data:
        raise InvalidCallback()

    if data == "switch_model":
        return SwitchModel()

    if data.startswith("category_"):
        value = data.removeprefix("category_")
        try:
            return SelectCategory(Category(value))
        except ValueError:
            raise InvalidCallback()

    if data.startswith("model_"):
        # The key is not checked against the catalog here; selection does that.
        model_key = data.removeprefix("model_")
        if not model_key:
            raise InvalidCallback()
        return SelectModel(model_key)

    raise InvalidCallback()
