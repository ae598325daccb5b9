"""
PID files for long-running player monitors
"""

import os
import re
import signal
import tempfile
import time
from pathlib import Path
from typing import List
from urllib.parse import urlsplit

PID_PREFIX = 'shoutstream_'


def stream_key(url: str) -> str:
    """Filesystem-safe key for a stream URL (host, port and mount)"""
    parts = urlsplit(url)
    raw = f"{parts.netloc}{parts.path}".strip('/') or url
    return re.sub(r'[^A-Za-z0-9._-]+', '_', raw).strip('_') or 'stream'


def get_pid_dir() -> Path:
    return Path(os.environ.get('SHOUTSTREAM_PID_DIR') or tempfile.gettempdir())


def get_pid_file_path(key: str) -> Path:
    """Get the path for the PID file of a monitor"""
    return get_pid_dir() / f"{PID_PREFIX}{key}.pid"


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def is_instance_running(key: str) -> bool:
    """Check if a monitor is already running for this key; stale files are removed"""
    pid_file = get_pid_file_path(key)
    if not pid_file.exists():
        return False
    try:
        pid = int(pid_file.read_text().strip())
    except (OSError, ValueError):
        pid_file.unlink(missing_ok=True)
        return False
    if _pid_alive(pid):
        return True
    pid_file.unlink(missing_ok=True)
    return False


def write_pid_file(key: str):
    """Write the current process ID to the monitor's PID file"""
    pid_file = get_pid_file_path(key)
    pid_file.parent.mkdir(parents=True, exist_ok=True)
    pid_file.write_text(str(os.getpid()))


def cleanup_pid_file(key: str):
    """Remove the PID file on exit"""
    get_pid_file_path(key).unlink(missing_ok=True)


def stop_instance(key: str, grace_period: float = 2.5) -> bool:
    """Stop a running monitor: SIGTERM first, SIGKILL if it lingers"""
    pid_file = get_pid_file_path(key)
    try:
        pid = int(pid_file.read_text().strip())
    except (OSError, ValueError):
        pid_file.unlink(missing_ok=True)
        return False

    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        pid_file.unlink(missing_ok=True)
        return False

    deadline = time.monotonic() + grace_period
    while time.monotonic() < deadline:
        if not _pid_alive(pid):
            pid_file.unlink(missing_ok=True)
            return True
        time.sleep(0.5)

    try:
        os.kill(pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    pid_file.unlink(missing_ok=True)
    return True


def get_running_instances() -> List[str]:
    """Keys of monitors that are currently running"""
    running = []
    for pid_file in sorted(get_pid_dir().glob(f"{PID_PREFIX}*.pid")):
        key = pid_file.stem[len(PID_PREFIX):]
        if is_instance_running(key):
            running.append(key)
    return running
