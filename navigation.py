# navigation.py
from collections import deque
from typing import Callable, Dict, List, Optional

from logging_config import PlayerSpawnError, get_logger
from models import Mode, ResultList, Screen, Video
from services import PlaybackSession, SearchPipeline

logger = get_logger('navigation')


class Navigator:
    """Owns mode, screen and list cursors, and turns key presses into transitions.

    Keys are Textual key names ("enter", "escape", "ctrl+c", ...). Printable
    characters are matched by the character itself, so "H" and "/" work the
    same whatever name the terminal reports for them.
    """

    def __init__(self, pipeline: SearchPipeline, session: PlaybackSession,
                 queue: Optional[ResultList] = None, message_history: int = 50,
                 clipboard: Optional[Callable[[str], None]] = None):
        self.pipeline = pipeline
        self.session = session
        self.clipboard = clipboard
        self.results = pipeline.results
        self.queue = queue if queue is not None else ResultList()

        self.mode = Mode.NORMAL
        self.screen = Screen.QUEUE
        self.tab_index = Screen.QUEUE.tab_index
        self.query = ""
        self.now_playing: Optional[Video] = None
        self.running = True
        self.messages = deque(maxlen=message_history)

        self._normal_keys: Dict[str, Callable[[], None]] = {
            "/": self.begin_search,
            "j": self.select_next,
            "down": self.select_next,
            "k": self.select_previous,
            "up": self.select_previous,
            "L": self.next_tab,
            "tab": self.next_tab,
            "right": self.next_tab,
            "H": self.previous_tab,
            "shift+tab": self.previous_tab,
            "left": self.previous_tab,
            "enter": self.activate,
            "s": self.stop_playback,
            "escape": self.stop_playback,
            " ": self.toggle_pause,
            "space": self.toggle_pause,
            "0": self.volume_up,
            "9": self.volume_down,
            "v": self.query_volume,
            "c": self.copy_link,
            "q": self.quit,
            "ctrl+c": self.quit,
        }
        self._search_keys: Dict[str, Callable[[], None]] = {
            "enter": self.commit_search,
            "escape": self.cancel_search,
            "backspace": self.backspace,
            "ctrl+c": self.quit,
        }
        self._activate_by_screen: Dict[Screen, Callable[[], None]] = {
            Screen.RESULTS: self._play_from_results,
            Screen.QUEUE: self._play_from_queue,
        }

    @property
    def active_list(self) -> ResultList:
        return self.results if self.screen is Screen.RESULTS else self.queue

    @property
    def loading(self) -> bool:
        return self.pipeline.loading

    @property
    def is_playing(self) -> bool:
        return self.session.is_active

    def notify(self, message: str) -> None:
        logger.info(message)
        self.messages.append(message)

    def drain_messages(self) -> List[str]:
        messages = list(self.messages)
        self.messages.clear()
        return messages

    # --- Loop hooks ---
    def tick(self) -> None:
        """One loop step: collect a search result, then advance the control connection."""
        error = self.pipeline.poll()
        if error is not None:
            self.notify(f"Search failed: {error}")
        self.session.poll_connect()
        if self.session.poll_exit():
            self.notify("Player exited.")

    def handle_key(self, key: str, character: Optional[str] = None) -> None:
        name = self._normalize(key, character)
        if self.mode is Mode.SEARCH:
            handler = self._search_keys.get(name)
            if handler is not None:
                handler()
            elif len(name) == 1 and name.isprintable():
                self.query += name
            return

        handler = self._normal_keys.get(name)
        if handler is not None:
            handler()

    @staticmethod
    def _normalize(key: str, character: Optional[str]) -> str:
        if character is not None and len(character) == 1 and character.isprintable():
            return character
        return key

    # --- Search entry ---
    def begin_search(self) -> None:
        self.mode = Mode.SEARCH
        self.query = ""

    def backspace(self) -> None:
        self.query = self.query[:-1]

    def commit_search(self) -> None:
        query = self.query.strip()
        self.query = ""
        self.mode = Mode.NORMAL
        self.choose(Screen.RESULTS)
        if not query:
            self.notify("Nothing to search for.")
            return
        self.pipeline.submit(query)
        self.notify(f"Searching for '{query}'...")

    def cancel_search(self) -> None:
        self.query = ""
        self.mode = Mode.NORMAL

    # --- Lists and tabs ---
    def select_next(self) -> None:
        self.active_list.select_next()

    def select_previous(self) -> None:
        self.active_list.select_previous()

    def choose(self, screen: Screen) -> None:
        self.screen = screen
        self.tab_index = screen.tab_index

    def next_tab(self) -> None:
        self.choose(Screen((self.screen.tab_index + 1) % len(Screen)))

    def previous_tab(self) -> None:
        self.choose(Screen((self.screen.tab_index - 1) % len(Screen)))

    # --- Playback ---
    def activate(self) -> None:
        self._activate_by_screen[self.screen]()

    def _play_from_results(self) -> None:
        video = self.results.selected
        if video is None or not self._play(video):
            return
        self.queue.append(video)
        self.choose(Screen.QUEUE)

    def _play_from_queue(self) -> None:
        video = self.queue.selected
        if video is not None:
            self._play(video)

    def _play(self, video: Video) -> bool:
        try:
            self.session.start(video)
        except PlayerSpawnError as e:
            self.notify(str(e))
            return False
        self.now_playing = video
        self.notify(f"Playing '{video.title}'")
        return True

    def stop_playback(self) -> None:
        if self.session.is_active:
            self.session.stop()
            self.notify("Stopped.")

    def toggle_pause(self) -> None:
        if self.session.is_active:
            self.session.toggle_pause()

    def volume_up(self) -> None:
        if self.session.is_active:
            self.session.volume_up()

    def volume_down(self) -> None:
        if self.session.is_active:
            self.session.volume_down()

    def query_volume(self) -> None:
        if self.session.is_active:
            self.session.query_volume()

    def copy_link(self) -> None:
        video = self.active_list.selected
        if self.clipboard is None:
            self.notify("Clipboard support is not installed (pip install pyperclip).")
            return
        if video is None:
            self.notify("No video selected.")
            return
        try:
            self.clipboard(video.url)
        except RuntimeError as e:
            self.notify(f"Could not copy link: {e}")
            return
        self.notify(f"Copied link for '{video.title}'.")

    def quit(self) -> None:
        self.session.stop()
        self.pipeline.shutdown()
        self.running = False
