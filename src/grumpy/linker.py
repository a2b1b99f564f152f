## Copyright © 2025, Alex J. Champandard.  Licensed under AGPLv3; see LICENSE! ⚘

from .types import Instr, Label, Push, LabelRef, LocVal
from .errors import GrumpyLinkError


def resolve_labels(code: list[Instr]) -> dict[str, int]:
    """Map every label to the location of the first real instruction after it."""
    locations, index = {}, 0
    for ins in code:
        if not isinstance(ins, Label):
            index += 1
        elif ins.name in locations:
            raise GrumpyLinkError(f"Label `{ins.name}` defined more than once.", label=ins.name)
        else:
            locations[ins.name] = index
    return locations


def link(code: list[Instr]) -> list[Instr]:
    """Drop labels and replace symbolic locations with absolute ones."""
    locations = resolve_labels(code)

    def _resolve(ins):
        if isinstance(ins, Push) and isinstance(ins.value, LabelRef):
            if (loc := locations.get(ins.value.name)) is None:
                raise GrumpyLinkError(f"Reference to unknown label `{ins.value.name}`.", label=ins.value.name)
            return Push(LocVal(loc))
        return ins

    return [_resolve(ins) for ins in code if not isinstance(ins, Label)]
