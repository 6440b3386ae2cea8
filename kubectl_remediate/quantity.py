"""
Kubernetes resource quantity helpers.

Only the subset needed for memory and cpu requests is handled:
binary/decimal suffixes for memory, millicores for cpu.
"""

_MEMORY_SUFFIXES = {
    "Ki": 1024,
    "Mi": 1024**2,
    "Gi": 1024**3,
    "Ti": 1024**4,
    "Pi": 1024**5,
    "k": 1000,
    "K": 1000,
    "M": 1000**2,
    "G": 1000**3,
    "T": 1000**4,
    "P": 1000**5,
}

_BINARY_UNITS = ("Pi", "Ti", "Gi", "Mi", "Ki")


def parse_memory(value: str | int | float) -> int:
    """
    Return a memory quantity in bytes.
    """
    s = str(value).strip()
    if not s:
        raise ValueError("empty memory quantity")
    # longest suffix first so "Mi" wins over "M"
    for suffix in sorted(_MEMORY_SUFFIXES, key=len, reverse=True):
        if s.endswith(suffix):
            return int(float(s[: -len(suffix)]) * _MEMORY_SUFFIXES[suffix])
    if s.endswith("m"):
        # millibytes, legal but odd
        return int(float(s[:-1]) / 1000)
    return int(float(s))


def format_memory(num_bytes: int) -> str:
    """
    Render bytes with the largest binary unit that divides them exactly.
    """
    for unit in _BINARY_UNITS:
        size = _MEMORY_SUFFIXES[unit]
        if num_bytes >= size and num_bytes % size == 0:
            return f"{num_bytes // size}{unit}"
    return str(num_bytes)


def parse_cpu(value: str | int | float) -> int:
    """
    Return a cpu quantity in millicores.
    """
    s = str(value).strip()
    if not s:
        raise ValueError("empty cpu quantity")
    if s.endswith("m"):
        return int(float(s[:-1]))
    if s.endswith("n"):
        return int(float(s[:-1]) / 1_000_000)
    return int(round(float(s) * 1000))


def format_cpu(millicores: int) -> str:
    if millicores % 1000 == 0:
        return str(millicores // 1000)
    return f"{millicores}m"


PARSERS = {"memory": parse_memory, "cpu": parse_cpu}
FORMATTERS = {"memory": format_memory, "cpu": format_cpu}


def reduce_request(resource: str, current: str, floor: str) -> str | None:
    """
    Halve a request, never going below the floor and never raising it.

    Returns the new quantity string, or None when no reduction is possible
    (the request is already at or below the floor).
    """
    parse = PARSERS[resource]
    fmt = FORMATTERS[resource]

    current_value = parse(current)
    floor_value = parse(floor)

    target = max(current_value // 2, floor_value)
    if target >= current_value:
        return None
    return fmt(target)
