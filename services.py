# services.py
import json
import os
import shutil
import socket
import subprocess
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import List, Optional, Set, Tuple

from logging_config import PlayerSpawnError, get_logger
from models import ResultList, SessionState, Video

logger = get_logger('services')


def parse_search_output(stdout: str) -> List[Video]:
    """Parses newline-delimited JSON, dropping (and logging) any line that is not a valid record."""
    videos = []
    for lineno, line in enumerate(stdout.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            videos.append(Video.from_json_line(line))
        except (ValueError, RecursionError) as e:
            logger.warning(f"Dropping malformed search result on line {lineno}: {e}")
    return videos


class CatalogClient:
    """A service to run catalog lookups through the external search command."""
    def __init__(self, command: str, limit: int = 25):
        self.command_name = command
        self.command_path = shutil.which(command)
        self.limit = limit
        self._running: Set[subprocess.Popen] = set()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def is_available(self) -> bool:
        return self.command_path is not None

    @property
    def active_lookups(self) -> int:
        with self._lock:
            return len(self._running)

    def build_command(self, query: str) -> List[str]:
        return [
            self.command_path or self.command_name,
            f"ytsearch{self.limit}:{query}",
            "--dump-json",
            "--flat-playlist",
            "--no-warnings",
        ]

    def search(self, query: str) -> Tuple[Optional[List[Video]], Optional[str]]:
        """Runs one lookup, returning (videos, None) on success or (None, error text) on failure."""
        command = self.build_command(query)
        logger.info(f"Searching for {query!r}")
        try:
            process = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding='utf-8',
                errors='replace',
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.error(f"Could not run {self.command_name}: {e}")
            return None, f"Could not run '{self.command_name}': {e}"

        with self._lock:
            self._running.add(process)
            closed = self._closed
        if closed:
            self._terminate(process)
        try:
            stdout, stderr = process.communicate()
        finally:
            with self._lock:
                self._running.discard(process)

        if self._closed:
            logger.info(f"Search for {query!r} stopped on shutdown")
            return None, "Search cancelled."
        if process.returncode != 0:
            logger.error(f"{self.command_name} exited with status {process.returncode}")
            return None, f"{self.command_name} error: {stderr.strip()}\nCheck if {self.command_name} is up to date."

        videos = parse_search_output(stdout)
        logger.info(f"Search for {query!r} returned {len(videos)} results")
        return videos, None

    def close(self) -> None:
        """Terminates every lookup still running. Lookups started afterwards are stopped at once."""
        with self._lock:
            self._closed = True
            processes = list(self._running)
        for process in processes:
            self._terminate(process)

    def _terminate(self, process: subprocess.Popen) -> None:
        # The worker blocked in communicate() reaps it.
        logger.info(f"Terminating {self.command_name} (pid {process.pid})")
        try:
            process.terminate()
        except OSError as e:
            logger.warning(f"Could not signal {self.command_name} (pid {process.pid}): {e}")


class SearchPipeline:
    """Runs catalog lookups off the interaction loop and hands back one outcome per request.

    Each submission gets its own Future, which acts as a single-shot
    channel. Only the latest Future is tracked: a superseded lookup still
    runs to completion on its worker thread, but nobody ever reads its
    result.
    """
    def __init__(self, client: CatalogClient, results: ResultList,
                 executor: Optional[Executor] = None, max_workers: int = 4):
        self.client = client
        self.results = results
        self._executor = executor or ThreadPoolExecutor(max_workers=max_workers,
                                                        thread_name_prefix="ytqueue-search")
        self._pending: Optional[Future] = None
        self.query: Optional[str] = None

    @property
    def loading(self) -> bool:
        return self._pending is not None

    def submit(self, query: str) -> None:
        """Clears the results and starts a lookup for ``query``."""
        if self._pending is not None:
            logger.debug(f"Abandoning in-flight search for {self.query!r}")
        self.results.clear()
        self.query = query
        self._pending = self._executor.submit(self.client.search, query)

    def poll(self) -> Optional[str]:
        """Collects a finished lookup, if any. Returns error text for the user, or None."""
        future = self._pending
        if future is None or not future.done():
            return None
        self._pending = None

        if future.cancelled():
            logger.warning(f"Search for {self.query!r} was cancelled")
            return None
        error = future.exception()
        if error is not None:
            logger.error(f"Search worker for {self.query!r} ended without a result: {error!r}")
            return None

        videos, error_details = future.result()
        if error_details is not None:
            return error_details
        self.results.replace(videos)
        return None

    def shutdown(self) -> None:
        """Stops the executor and any lookup still running, so no worker outlives the app."""
        self._pending = None
        self._executor.shutdown(wait=False, cancel_futures=True)
        self.client.close()


class PlaybackSession:
    """Owns the external player process and its control socket."""
    def __init__(self, command: str, socket_path: str, connect_attempts: int = 10,
                 volume_step: int = 5, command_timeout: float = 0.2, terminate_timeout: float = 1.0):
        self.command_name = command
        self.command_path = shutil.which(command)
        self.socket_path = socket_path
        self.connect_attempts = connect_attempts
        self.volume_step = volume_step
        self.command_timeout = command_timeout
        self.terminate_timeout = terminate_timeout

        self.process: Optional[subprocess.Popen] = None
        self.connection: Optional[socket.socket] = None
        self.attempts_remaining = 0
        self.state = SessionState.IDLE
        self.video: Optional[Video] = None

    @property
    def is_available(self) -> bool:
        return self.command_path is not None

    @property
    def is_active(self) -> bool:
        return self.process is not None

    @property
    def is_connected(self) -> bool:
        return self.connection is not None

    def build_command(self, video: Video) -> List[str]:
        return [
            self.command_path or self.command_name,
            "--ytdl-format=bestaudio",
            video.url,
            "--no-video",
            f"--input-ipc-server={self.socket_path}",
        ]

    def start(self, video: Video) -> None:
        """Starts playing ``video``, tearing down any current session first."""
        if self.is_active:
            logger.info(f"Replacing current session for {self.video.id if self.video else '?'}")
            self.stop()

        previous_state, self.state = self.state, SessionState.STARTING
        try:
            self.process = subprocess.Popen(
                self.build_command(video),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except (OSError, subprocess.SubprocessError) as e:
            self.state = previous_state
            logger.error(f"Failed to start {self.command_name}: {e}")
            raise PlayerSpawnError(f"Failed to start {self.command_name}: {e}") from e

        self.video = video
        self.attempts_remaining = self.connect_attempts
        self.state = SessionState.CONNECTING
        logger.info(f"Started {self.command_name} (pid {self.process.pid}) for {video.id}")

    def poll_connect(self) -> bool:
        """Makes one non-blocking attempt to reach the control socket. Returns True on connect."""
        if self.attempts_remaining <= 0 or self.process is None:
            return False

        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.setblocking(False)
        try:
            sock.connect(self.socket_path)
        except OSError as e:
            sock.close()
            self.attempts_remaining -= 1
            logger.debug(f"Control socket not ready ({e}); {self.attempts_remaining} attempts left")
            if self.attempts_remaining == 0:
                self.state = SessionState.STARTING
                logger.warning(f"Gave up on control socket {self.socket_path}; commands are disabled")
            return False

        sock.settimeout(self.command_timeout)
        self.connection = sock
        self.attempts_remaining = 0
        self.state = SessionState.CONNECTED
        logger.info(f"Connected to control socket {self.socket_path}")
        return True

    def poll_exit(self) -> bool:
        """Tears the session down if the player exited on its own. Returns True when it did."""
        if self.process is None or self.process.poll() is None:
            return False
        logger.info(f"{self.command_name} exited with status {self.process.returncode}")
        self._teardown()
        return True

    def send_command(self, *words: str) -> bool:
        """Writes one control command. Never raises; returns whether it was written."""
        if self.connection is None:
            logger.info(f"No control connection, dropping command {list(words)}")
            return False

        message = json.dumps({"command": [str(word) for word in words]}) + "\n"
        try:
            self.connection.sendall(message.encode('utf-8'))
        except OSError as e:
            logger.warning(f"Could not write to control socket: {e}")
            return False
        logger.debug(f"Sent control command {message.strip()}")
        return True

    def toggle_pause(self) -> bool:
        return self.send_command("cycle", "pause")

    def volume_up(self) -> bool:
        return self.send_command("add", "volume", str(self.volume_step))

    def volume_down(self) -> bool:
        return self.send_command("add", "volume", str(-self.volume_step))

    def query_volume(self) -> bool:
        return self.send_command("get_property", "volume")

    def stop(self) -> None:
        """Stops playback and releases everything. Does nothing when no session exists."""
        if self.process is None and self.connection is None:
            return
        self._teardown()

    def _teardown(self) -> None:
        # socket -> signal -> reap -> unlink
        if self.connection is not None:
            try:
                self.connection.close()
            except OSError as e:
                logger.warning(f"Could not close control socket: {e}")
            self.connection = None

        process, self.process = self.process, None
        if process is not None:
            self._terminate(process)

        try:
            os.remove(self.socket_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove {self.socket_path}: {e}")

        self.attempts_remaining = 0
        self.video = None
        self.state = SessionState.STOPPED
        logger.info("Playback stopped")

    def _terminate(self, process: subprocess.Popen) -> None:
        try:
            process.terminate()
        except OSError as e:
            logger.warning(f"Could not signal {self.command_name} (pid {process.pid}): {e}")
        try:
            process.wait(timeout=self.terminate_timeout)
        except subprocess.TimeoutExpired:
            logger.warning(f"{self.command_name} (pid {process.pid}) ignored SIGTERM, killing")
            try:
                process.kill()
                process.wait(timeout=self.terminate_timeout)
            except (OSError, subprocess.TimeoutExpired) as e:
                logger.warning(f"Force kill failed: {e}")
        except OSError as e:
            logger.warning(f"Could not wait on {self.command_name} (pid {process.pid}): {e}")
