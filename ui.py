# ui.py
from typing import Optional

from rich.markup import escape
from textual.widgets import DataTable, RichLog, Static

from models import Mode, ResultList, Screen, SessionState, Video


class TabHeader(Static):
    """Widget showing the screen tabs with the active one highlighted."""
    def update_tabs(self, current: Screen) -> None:
        labels = []
        for screen in Screen:
            label = f"  {screen.title}  "
            labels.append(f"[reverse b]{label}[/]" if screen is current else label)
        self.update("".join(labels))


class NowPlaying(Static):
    """Widget for the current track and player status."""
    def update_now_playing(self, video: Optional[Video], state: SessionState,
                           playing: bool, loading: bool) -> None:
        if video is None:
            text = "[i]Nothing playing[/i]"
        elif playing:
            text = escape(video.title)
            if state is SessionState.STARTING:
                text += " [dim](no control)[/dim]"
            elif state is SessionState.CONNECTING:
                text += " [dim](connecting)[/dim]"
        else:
            text = f"[i]{escape(video.title)}[/i]"
        if loading:
            text = "[yellow]Searching...[/yellow]  " + text
        self.update(text)


class VideoTable(DataTable, can_focus=False):
    """Read-only table mirroring a ResultList and its cursor."""
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._version: Optional[int] = None
        self._cursor: Optional[int] = None

    def on_mount(self) -> None:
        self.add_columns("Title", "Uploader")
        self.cursor_type = "row"

    def update_results(self, results: ResultList) -> None:
        if results.version != self._version:
            self.clear()
            for index, video in enumerate(results):
                # Row keys must be unique and the queue may hold the same video twice.
                self.add_row(escape(video.title), escape(video.uploader), key=str(index))
            self._version = results.version
            self._cursor = None
        if results.cursor is not None and results.cursor != self._cursor:
            self.move_cursor(row=results.cursor)
            self._cursor = results.cursor


class SearchBox(Static):
    """Widget showing the query being typed."""
    def update_query(self, mode: Mode, query: str) -> None:
        self.display = mode is Mode.SEARCH
        if self.display:
            self.update(f" Search: {escape(query)}[blink]_[/blink]")


class HelpBar(Static):
    """Key hints."""
    def on_mount(self) -> None:
        self.update(" j/k: Scroll  H/L: Switch Tab  /: Search  Enter: Play  "
                    "Space: Pause  9/0: Volume  s: Stop  c: Copy Link  q: Quit")


class LogPane(RichLog, can_focus=False):
    """A dedicated widget for logging application events."""
    def add_message(self, message: str) -> None:
        self.write(message)
