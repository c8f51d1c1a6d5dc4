# models.py
import json
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional

WATCH_URL = "https://www.youtube.com/watch?v={}"


@dataclass(frozen=True)
class Video:
    """A single playable catalog item."""
    id: str
    title: str
    uploader: str = ""

    @property
    def url(self) -> str:
        return WATCH_URL.format(self.id)

    @classmethod
    def from_json_line(cls, line: str) -> "Video":
        """Parses one line of catalog output. Raises ValueError on anything malformed."""
        item = json.loads(line)
        if not isinstance(item, dict):
            raise ValueError(f"expected a JSON object, got {type(item).__name__}")
        video_id, title = item.get("id"), item.get("title")
        if not isinstance(video_id, str) or not video_id:
            raise ValueError("missing or invalid 'id'")
        if not isinstance(title, str):
            raise ValueError("missing or invalid 'title'")
        uploader = item.get("uploader")
        return cls(id=video_id, title=title, uploader=uploader if isinstance(uploader, str) else "")


class ResultList:
    """An ordered list of videos with a selection cursor.

    The cursor is None exactly when the list is empty, and snaps to 0 when
    the list goes from empty to non-empty. ``version`` increases on every
    change to the items so readers can tell when to redraw.
    """

    def __init__(self, videos: Iterable[Video] = ()):
        self._items: List[Video] = list(videos)
        self.cursor: Optional[int] = 0 if self._items else None
        self.version = 0

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)

    def __getitem__(self, index: int) -> Video:
        return self._items[index]

    @property
    def items(self) -> List[Video]:
        return list(self._items)

    @property
    def selected(self) -> Optional[Video]:
        if self.cursor is None:
            return None
        return self._items[self.cursor]

    def replace(self, videos: Iterable[Video]) -> None:
        self._items = list(videos)
        self.cursor = 0 if self._items else None
        self.version += 1

    def append(self, video: Video) -> None:
        self._items.append(video)
        if self.cursor is None:
            self.cursor = 0
        self.version += 1

    def clear(self) -> None:
        self.replace([])

    def select(self, index: int) -> None:
        if not self._items:
            return
        self.cursor = max(0, min(len(self._items) - 1, index))

    def select_next(self) -> None:
        if self.cursor is not None:
            self.select(self.cursor + 1)

    def select_previous(self) -> None:
        if self.cursor is not None:
            self.select(self.cursor - 1)


class Mode(Enum):
    NORMAL = "normal"
    SEARCH = "search"


class Screen(Enum):
    QUEUE = 0
    RESULTS = 1

    @property
    def tab_index(self) -> int:
        return self.value

    @property
    def title(self) -> str:
        return self.name.title()


class SessionState(Enum):
    IDLE = "idle"
    STARTING = "starting"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    STOPPED = "stopped"
