from __future__ import annotations

import logging
import os
import threading
from typing import BinaryIO, Iterable, Iterator, Optional

logger = logging.getLogger(__name__)


def stream_lines(stream: Iterable[str]) -> Iterator[str]:
    """
    Stream mode (LOG_FILE=-). Ends with the stream; read errors propagate.
    """
    for raw in stream:
        line = raw.strip()
        if line:
            yield line


class FileTailer:
    """
    Follows a growing file like `tail -F`.

    The first open seeks to the end; after truncation or rotation the new
    file is read from the start. A trailing fragment without a newline is
    held back until the rest of the line arrives, and is thrown away if the
    file is replaced in the meantime.

    Truncation is only noticed at EOF, by the file being smaller than the
    read offset. A copytruncate that grows back past the old offset before
    the next poll goes unnoticed and the reader resumes mid-file.
    """

    def __init__(self, path: str, poll_interval: float = 0.1, retry_interval: float = 5.0):
        self.path = path
        self.poll_interval = poll_interval
        self.retry_interval = retry_interval
        self._stop = threading.Event()
        self._fh: Optional[BinaryIO] = None
        self._inode: Optional[int] = None
        self._partial = b""
        self.reopens = 0

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def __iter__(self) -> Iterator[str]:
        from_start = False
        try:
            while not self._stop.is_set():
                if self._fh is None:
                    if not self._open(from_start):
                        continue
                    from_start = False

                try:
                    chunk = self._fh.readline()
                except OSError as exc:
                    logger.warning("Error reading %s: %s; reopening", self.path, exc)
                    self._close()
                    continue

                if chunk:
                    if not chunk.endswith(b"\n"):
                        self._partial += chunk
                        continue
                    data = self._partial + chunk
                    self._partial = b""
                    line = data.decode("utf-8", errors="replace").strip()
                    if line:
                        yield line
                    continue

                # EOF: keep the descriptor, but notice when the path was swapped or cut
                if self._replaced():
                    self._close()
                    self.reopens += 1
                    from_start = True
                    continue
                self._stop.wait(self.poll_interval)
        finally:
            self._close()

    def _open(self, from_start: bool) -> bool:
        try:
            fh = open(self.path, "rb")
        except OSError as exc:
            logger.info("Waiting for log file (will retry in %.0fs): %s", self.retry_interval, exc)
            self._stop.wait(self.retry_interval)
            return False

        try:
            if not from_start:
                fh.seek(0, os.SEEK_END)
            self._inode = os.fstat(fh.fileno()).st_ino
        except OSError as exc:
            fh.close()
            logger.warning("Could not prepare %s: %s", self.path, exc)
            self._stop.wait(self.retry_interval)
            return False

        self._fh = fh
        self._partial = b""
        logger.info("Tailing %s from %s", self.path, "start" if from_start else "end")
        return True

    def _replaced(self) -> bool:
        try:
            st = os.stat(self.path)
        except FileNotFoundError:
            logger.info("%s disappeared; waiting for it to come back", self.path)
            return True
        except OSError as exc:
            logger.warning("Could not stat %s: %s", self.path, exc)
            return False

        if st.st_ino != self._inode:
            logger.info("%s was rotated; reopening from start", self.path)
            return True
        if st.st_size < self._fh.tell():
            logger.info("%s was truncated; reopening from start", self.path)
            return True
        return False

    def _close(self) -> None:
        if self._fh is not None:
            try:
                self._fh.close()
            except OSError:
                pass
        self._fh = None
        self._partial = b""
