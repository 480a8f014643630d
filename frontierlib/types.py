from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Protocol, Union


HTML = "html"
XML = "xml"
JSON = "json"
OTHER = "other"


def classify(content_type: str, body: Any = None) -> str:
    mime = (content_type or "").split(";", 1)[0].strip().lower()
    if mime in ("text/html", "application/xhtml+xml"):
        return HTML
    if mime.endswith("/xml") or mime.endswith("+xml"):
        return XML
    if mime.endswith("/json") or mime.endswith("+json"):
        return JSON
    if not mime and isinstance(body, (dict, list)):
        return JSON
    return OTHER


@dataclass
class Request:
    url: str
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class Response:
    status: Optional[int] = None
    headers: Dict[str, str] = field(default_factory=dict)
    content_type: str = ""
    body: Any = None


@dataclass
class RequestContext:
    url: str
    request: Request = field(init=False)
    response: Response = field(default_factory=Response)
    elapsed_ms: float = 0.0

    def __post_init__(self) -> None:
        self.request = Request(self.url)

    @property
    def body(self) -> Any:
        return self.response.body

    @body.setter
    def body(self, value: Any) -> None:
        self.response.body = value

    @property
    def status(self) -> Optional[int]:
        return self.response.status

    @property
    def kind(self) -> str:
        return classify(self.response.content_type, self.response.body)


Candidates = Union[None, str, Iterable[str]]


class DriverProtocol(Protocol):
    def __call__(self, ctx: RequestContext) -> Any: ...


class PaginateProtocol(Protocol):
    def __call__(self, parsed: Any, ctx: RequestContext) -> Candidates: ...
