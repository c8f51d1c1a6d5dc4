# main.py
import argparse
import sys
from pathlib import Path
from typing import List, Optional

try:
    import pyperclip
except ImportError:
    pyperclip = None

from rich.markup import escape
from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal
from textual.widgets import ContentSwitcher, Header

from config import Config, load_config
from logging_config import ConfigurationError, get_logger, setup_logging
from models import ResultList, Screen
from navigation import Navigator
from services import CatalogClient, PlaybackSession, SearchPipeline
from ui import HelpBar, LogPane, NowPlaying, SearchBox, TabHeader, VideoTable

logger = get_logger('main')

TABLE_IDS = {Screen.QUEUE: "queue-table", Screen.RESULTS: "results-table"}


class YTQueueApp(App):
    # Keys Textual would otherwise claim for focus handling or its own quit prompt.
    BINDINGS = [
        Binding(key, f"navigate('{key}')", show=False, priority=True)
        for key in ("tab", "shift+tab", "ctrl+c", "escape", "enter", "backspace",
                    "up", "down", "left", "right")
    ]
    CSS = """
    #top-bar { height: 1; }
    #tabs { width: 1fr; }
    #now-playing { width: 1fr; content-align: right middle; }
    #lists { height: 1fr; border: round $accent; }
    #search-box { border: round $accent; height: 3; }
    #log { height: 6; border: round $panel; }
    #help { height: 1; color: $text-muted; }
    """
    ENABLE_COMMAND_PALETTE = False
    TITLE = "ytqueue"

    def __init__(self, navigator: Navigator, catalog: CatalogClient, config: Config):
        super().__init__()
        self.navigator = navigator
        self.catalog = catalog
        self.config = config

    def compose(self) -> ComposeResult:
        yield Header()
        with Container(id="main-container"):
            with Horizontal(id="top-bar"):
                yield TabHeader(id="tabs")
                yield NowPlaying(id="now-playing")
            with ContentSwitcher(initial=TABLE_IDS[self.navigator.screen], id="lists"):
                yield VideoTable(id=TABLE_IDS[Screen.QUEUE])
                yield VideoTable(id=TABLE_IDS[Screen.RESULTS])
            yield SearchBox(id="search-box")
            yield LogPane(id="log", wrap=True, highlight=True, markup=True)
        yield HelpBar(id="help")

    def on_mount(self) -> None:
        log = self.query_one(LogPane)
        if self.catalog.is_available:
            log.add_message(f"[green]✅ {self.config.SEARCH_COMMAND} found.[/green]")
        else:
            log.add_message(f"[yellow]⚠️ '{self.config.SEARCH_COMMAND}' not found.[/yellow]")
        if self.navigator.session.is_available:
            log.add_message(f"[green]✅ {self.config.PLAYER_COMMAND} found.[/green]")
        else:
            log.add_message(f"[yellow]⚠️ '{self.config.PLAYER_COMMAND}' not found.[/yellow]")
        if pyperclip:
            log.add_message("[green]✅ Clipboard found.[/green]")
        else:
            log.add_message("[yellow]⚠️ 'pyperclip' not installed.[/yellow]")
        self.set_interval(self.config.TICK_INTERVAL, self.tick)
        self.call_after_refresh(self.refresh_view)

    def on_unmount(self) -> None:
        self.navigator.quit()

    def tick(self) -> None:
        self.navigator.tick()
        self.refresh_view()

    # --- Input ---
    def on_key(self, event: events.Key) -> None:
        event.stop()
        event.prevent_default()
        self.dispatch_key_to_navigator(event.key, event.character)

    def action_navigate(self, key: str) -> None:
        self.dispatch_key_to_navigator(key, None)

    def dispatch_key_to_navigator(self, key: str, character: Optional[str]) -> None:
        self.navigator.handle_key(key, character)
        if not self.navigator.running:
            self.exit()
            return
        self.refresh_view()

    # --- Drawing (read-only over navigator state) ---
    def refresh_view(self) -> None:
        nav = self.navigator
        self.query_one(TabHeader).update_tabs(nav.screen)
        self.query_one(NowPlaying).update_now_playing(
            nav.now_playing, nav.session.state, nav.is_playing, nav.loading)
        self.query_one(f"#{TABLE_IDS[Screen.QUEUE]}", VideoTable).update_results(nav.queue)
        self.query_one(f"#{TABLE_IDS[Screen.RESULTS]}", VideoTable).update_results(nav.results)
        self.query_one(ContentSwitcher).current = TABLE_IDS[nav.screen]
        self.query_one(SearchBox).update_query(nav.mode, nav.query)
        log = self.query_one(LogPane)
        for message in nav.drain_messages():
            log.add_message(escape(message))


def build_navigator(config: Config) -> Navigator:
    """Wires the services together from configuration."""
    catalog = CatalogClient(config.SEARCH_COMMAND, config.SEARCH_RESULT_LIMIT)
    pipeline = SearchPipeline(catalog, ResultList(), max_workers=config.SEARCH_WORKERS)
    session = PlaybackSession(
        config.PLAYER_COMMAND,
        config.SOCKET_PATH,
        connect_attempts=config.CONNECT_ATTEMPTS,
        volume_step=config.VOLUME_STEP,
        command_timeout=config.COMMAND_TIMEOUT,
        terminate_timeout=config.TERMINATE_TIMEOUT,
    )
    return Navigator(pipeline, session, message_history=config.MESSAGE_HISTORY,
                     clipboard=pyperclip.copy if pyperclip else None)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Search YouTube from the terminal and play audio through mpv.")
    parser.add_argument("--config", type=Path, help="JSON file overriding the default settings")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING, ERROR or CRITICAL")
    parser.add_argument("--log-file", help="Where to write the log while the interface is running")
    args = parser.parse_args(argv)

    setup_logging("WARNING", console=True)
    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        logger.error(str(e))
        return 1
    if args.log_level:
        config.LOG_LEVEL = args.log_level
    if args.log_file:
        config.LOG_FILE = args.log_file
    issues = config.validate()
    if issues:
        for issue in issues:
            print(f"ytqueue: {issue}", file=sys.stderr)
        return 1

    setup_logging(config.LOG_LEVEL, Path(config.LOG_FILE) if config.LOG_FILE else None)

    # --- Application Entry Point ---
    navigator = build_navigator(config)
    app = YTQueueApp(navigator, navigator.pipeline.client, config)
    try:
        app.run()
    finally:
        navigator.quit()
    return 0


if __name__ == "__main__":
    sys.exit(main())
