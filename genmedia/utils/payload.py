from collections.abc import Mapping
from typing import Any

Path = tuple[str, ...]


def dig(payload: Any, path: Path | str) -> Any:
    """
    Walk nested mappings along ``path``; None when any step is missing.

    :param payload: decoded JSON value
    :param path: key tuple, or a dotted string such as ``'output.error'``
    :return:
    """
    keys = tuple(path.split('.')) if isinstance(path, str) else path
    node = payload
    for key in keys:
        if not isinstance(node, Mapping):
            return None
        node = node.get(key)
        if node is None:
            return None
    return node
