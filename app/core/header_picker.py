"""Case-insensitive header projection for upstream requests."""

from typing import Dict, Iterable, Mapping


def pick(source: Mapping[str, str], properties: Iterable[str]) -> Dict[str, str]:
    """
    Return the entries of `source` named in `properties`, matched without regard
    to case and keyed by the spelling used in `properties`.

    Absent names are skipped. When `source` holds the same name in several
    cases the last one seen wins.
    """
    lowered: Dict[str, str] = {}
    for key, value in source.items():
        lowered[key.lower()] = value

    result: Dict[str, str] = {}
    for prop in properties:
        value = lowered.get(prop.lower())
        if value is not None:
            result[prop] = value
    return result
