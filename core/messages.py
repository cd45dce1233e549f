from dataclasses import dataclass, field
from typing import List, Optional, Tuple

Header = Tuple[str, str]


@dataclass
class PipelineRequest:
    """Transport-independent view of an inbound request."""
    method: str
    path: str
    headers: List[Header] = field(default_factory=list)
    query_string: str = ""


@dataclass
class PipelineResponse:
    """
    A fully buffered response travelling back through the pipeline.

    Header names are kept as given; lookups are case-insensitive.
    """
    status_code: int
    headers: List[Header] = field(default_factory=list)
    body: bytes = b""

    def get_header(self, name: str) -> Optional[str]:
        name = name.lower()
        for key, value in self.headers:
            if key.lower() == name:
                return value
        return None

    def set_header(self, name: str, value: str) -> None:
        """Replace every existing value of `name` with a single one."""
        lowered = name.lower()
        self.headers = [(k, v) for k, v in self.headers if k.lower() != lowered]
        self.headers.append((name, value))
