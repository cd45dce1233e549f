from typing import Dict

# Route prefixes whose trailing segment is dynamic, mapped to their metrics key
_DYNAMIC_PREFIXES: Dict[str, str] = {
    "status": "/status/:code",
    "delay": "/delay/:n",
    "redirect": "/redirect/:n",
    "anything": "/anything/*path",
}


def normalize_path(path: str) -> str:
    """
    Collapse dynamic route segments into a canonical metrics key.

    Examples:
        /status/404        -> /status/:code
        /delay/5           -> /delay/:n
        /redirect/3        -> /redirect/:n
        /anything/foo/bar  -> /anything/*path
        /cookies/set       -> /cookies/set

    Any other path is returned unchanged.
    """
    segments = path.split("/")
    if len(segments) < 3:
        return path

    prefix = segments[1]
    if prefix in _DYNAMIC_PREFIXES:
        return _DYNAMIC_PREFIXES[prefix]

    if prefix == "cookies":
        # The action (set/delete) is a fixed literal, keep it
        return f"/cookies/{segments[2]}"

    return path
