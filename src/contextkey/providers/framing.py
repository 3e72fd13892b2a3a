from __future__ import annotations
import json
import logging
from enum import Enum
from typing import List, Optional

from contextkey.core.errors import StreamAborted, TransportError
from contextkey.core.models import StreamRecord

logger = logging.getLogger(__name__)


class FramerState(str, Enum):
    BUFFERING = "buffering"
    DONE = "done"


class StreamFramer:
    """
    Incremental NDJSON framer for the generate stream.

    Bytes arrive split at arbitrary points. Each feed() appends to the buffer,
    emits one StreamRecord per complete line and keeps the trailing partial
    line for the next call. Lines that are not JSON objects are dropped.
    The framer is DONE once it emits a record with done=true.
    """

    def __init__(self) -> None:
        self._buffer = b""
        self.state = FramerState.BUFFERING
        self.records_seen = 0

    @property
    def done(self) -> bool:
        return self.state is FramerState.DONE

    def feed(self, chunk: bytes) -> List[StreamRecord]:
        if self.done:
            if chunk:
                logger.debug("Ignoring %d bytes received after the final record", len(chunk))
            return []

        self._buffer += chunk
        *lines, self._buffer = self._buffer.split(b"\n")
        return self._emit(lines)

    def finish(self) -> List[StreamRecord]:
        """
        End of stream. Decodes an unterminated last line, then raises
        StreamAborted when no final record was seen.
        """
        out: List[StreamRecord] = []
        if not self.done and self._buffer.strip():
            out = self._emit([self._buffer])
        self._buffer = b""
        if not self.done:
            raise StreamAborted(
                "Stream closed before the backend sent a final record.",
                records_received=self.records_seen,
            )
        return out

    def _emit(self, lines: List[bytes]) -> List[StreamRecord]:
        out: List[StreamRecord] = []
        for line in lines:
            if self.done:
                # anything framed in the same chunk after the final record
                break
            record = self._decode(line)
            if record is None:
                continue
            out.append(record)
            self.records_seen += 1
            if record.is_final:
                self.state = FramerState.DONE
        return out

    @staticmethod
    def _decode(line: bytes) -> Optional[StreamRecord]:
        line = line.strip()
        if not line:
            return None
        try:
            obj = json.loads(line)
        except ValueError:
            logger.warning("Dropping non-JSON stream line: %r", line[:200])
            return None
        if not isinstance(obj, dict):
            logger.warning("Dropping stream line that is not a JSON object: %r", line[:200])
            return None
        if obj.get("error"):
            raise TransportError(
                f"Backend reported an error mid-stream: {obj['error']}",
                backend_error=obj["error"],
            )
        text = obj.get("response")
        return StreamRecord(
            text=text if isinstance(text, str) else "",
            is_final=obj.get("done") is True,
            model=obj.get("model"),
            created_at=obj.get("created_at"),
        )
