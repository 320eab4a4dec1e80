"""Utility functions for subprocess execution with an enforced timeout.

External tools such as powercfg occasionally hang (WMI provider stalls,
pending power policy changes). ``run_with_timeout`` keeps polling the child
so it can be killed once the time budget is spent, and drains stdout/stderr
on background threads so a chatty child cannot block on a full pipe.
"""

import subprocess
import time
import logging
import threading
from typing import List, Optional

logger = logging.getLogger(__name__)


def run_with_timeout(
    command: List[str],
    *,
    timeout: Optional[float] = None,
    capture_output: bool = True,
    text: bool = True,
    encoding: str = "utf-8",
    errors: str = "replace",
    cwd: Optional[str] = None,
    check_interval: float = 0.1,
) -> subprocess.CompletedProcess:
    """Run a command, killing it if it outlives ``timeout`` seconds.

    Behaves like ``subprocess.run`` with stdin closed.

    Args:
        command: Command to execute (list of strings)
        timeout: Maximum time to wait for the process (None = no timeout)
        capture_output: If True, capture stdout and stderr
        text: If True, return stdout/stderr as strings
        encoding: Text encoding for stdout/stderr
        errors: Error handling for encoding
        cwd: Working directory for the command
        check_interval: How often to poll the process (seconds)

    Returns:
        CompletedProcess instance with stdout, stderr, and returncode

    Raises:
        subprocess.TimeoutExpired: If process exceeds timeout (it is killed first)
        OSError: If the executable cannot be started
    """
    process = subprocess.Popen(
        command,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE if capture_output else None,
        stderr=subprocess.PIPE if capture_output else None,
        text=text,
        encoding=encoding if text else None,
        errors=errors if text else None,
        cwd=cwd,
    )

    stdout_result = {"data": "" if text else b""}
    stderr_result = {"data": "" if text else b""}

    def _drain(stream, sink):
        try:
            sink["data"] = stream.read()
        except (OSError, ValueError) as e:
            logger.debug(f"Error reading process output: {e}")

    readers = []
    if capture_output:
        for stream, sink in ((process.stdout, stdout_result), (process.stderr, stderr_result)):
            if stream:
                t = threading.Thread(target=_drain, args=(stream, sink), daemon=True)
                t.start()
                readers.append(t)

    start_time = time.time()
    while process.poll() is None:
        elapsed = time.time() - start_time
        if timeout is not None and elapsed >= timeout:
            logger.warning("Command exceeded %.1fs, killing: %s", timeout, " ".join(command))
            process.kill()
            process.wait()
            for t in readers:
                t.join(timeout=0.5)
            raise subprocess.TimeoutExpired(
                command, timeout, output=stdout_result["data"], stderr=stderr_result["data"]
            )
        wait_timeout = check_interval
        if timeout is not None:
            wait_timeout = max(0.0, min(wait_timeout, timeout - elapsed))
        try:
            process.wait(timeout=wait_timeout)
        except subprocess.TimeoutExpired:
            continue

    for t in readers:
        t.join(timeout=2.0)

    return subprocess.CompletedProcess(
        command,
        process.returncode,
        stdout_result["data"] if capture_output else None,
        stderr_result["data"] if capture_output else None,
    )


__all__ = ["run_with_timeout"]
