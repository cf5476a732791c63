"""
Editing operations on an option-value mapping.

When the shop turns off ``allowSharedImages`` an image may belong to at
most one option value; these helpers keep that true while a merchant
assigns images, and repair tables that violate it before they are saved.
All functions return a new mapping and leave their input untouched.
"""

from collections.abc import Iterable, Mapping


def assigned_image_ids(mapping: Mapping[str, Iterable[str]]) -> set[str]:
    """Every image id that appears under any option value."""
    return {image_id for image_ids in mapping.values() for image_id in image_ids}


def is_exclusive(mapping: Mapping[str, Iterable[str]]) -> bool:
    seen: set[str] = set()
    for image_ids in mapping.values():
        for image_id in set(image_ids):
            if image_id in seen:
                return False
            seen.add(image_id)
    return True


def _without(mapping: Mapping[str, list[str]], keep_key: str, image_ids: set[str]) -> dict[str, list[str]]:
    result: dict[str, list[str]] = {}
    for key, ids in mapping.items():
        if key != keep_key:
            ids = [i for i in ids if i not in image_ids]
            if not ids:
                continue
        result[key] = list(ids)
    return result


def assign_images(
    mapping: Mapping[str, list[str]],
    option_value: str,
    image_ids: Iterable[str],
    allow_shared: bool = True,
) -> dict[str, list[str]]:
    """Replace the image set of ``option_value``.

    Without sharing, the assigned ids are taken away from every other value.
    An empty assignment removes the value from the mapping.
    """
    ids = list(dict.fromkeys(image_ids))
    if allow_shared:
        result = {key: list(value) for key, value in mapping.items()}
    else:
        result = _without(mapping, option_value, set(ids))
    if ids:
        result[option_value] = ids
    else:
        result.pop(option_value, None)
    return result


def toggle_image(
    mapping: Mapping[str, list[str]],
    option_value: str,
    image_id: str,
    allow_shared: bool = True,
) -> dict[str, list[str]]:
    """Add ``image_id`` to ``option_value`` or remove it if it is already there."""
    current = list(mapping.get(option_value, []))
    if image_id in current:
        current.remove(image_id)
        return assign_images(mapping, option_value, current, allow_shared=True)
    return assign_images(mapping, option_value, current + [image_id], allow_shared=allow_shared)


def enforce_exclusive(mapping: Mapping[str, Iterable[str]]) -> dict[str, list[str]]:
    """Give each image id to the first option value (in mapping order) that claims it."""
    claimed: set[str] = set()
    result: dict[str, list[str]] = {}
    for key, image_ids in mapping.items():
        ids = [i for i in dict.fromkeys(image_ids) if i not in claimed]
        claimed.update(ids)
        if ids:
            result[key] = ids
    return result
