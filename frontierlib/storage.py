import json
import threading
from pathlib import Path
from typing import Dict

from .types import RequestContext


def response_record(ctx: RequestContext) -> Dict:
    return {
        "url": ctx.url,
        "status": ctx.status,
        "content_type": ctx.response.content_type,
        "kind": ctx.kind,
        "fetch_ms": round(ctx.elapsed_ms, 1),
    }


class JsonlWriter:
    def __init__(self, output_path: str, append: bool = False) -> None:
        self.output_path = output_path
        self._lock = threading.Lock()
        out_path = Path(self.output_path)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = out_path.open("a" if append else "w", encoding="utf-8")

    def write(self, record: Dict) -> None:
        line = json.dumps(record, ensure_ascii=False)
        with self._lock:
            self._fh.write(line + "\n")
            self._fh.flush()

    def write_response(self, parsed, ctx: RequestContext) -> None:
        self.write(response_record(ctx))

    def close(self) -> None:
        with self._lock:
            if not self._fh.closed:
                self._fh.close()

    def __enter__(self) -> "JsonlWriter":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
