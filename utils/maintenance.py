"""
Maintenance entry points for the YouTube queue music bot
PID file handling, the stop script and the temp-file cleanup script
"""
import os
import sys
from pathlib import Path
from typing import Optional

import psutil

from config.settings import PID_FILE, TEMP_DIR
from utils import janitor

STOP_TIMEOUT = 10


def write_pid_file(path: str = PID_FILE) -> Path:
    """Record this process's PID so the stop script can find it"""
    pid_path = Path(path)
    pid_path.write_text(str(os.getpid()), encoding='utf-8')
    return pid_path


def read_pid_file(path: str = PID_FILE) -> Optional[int]:
    pid_path = Path(path)
    if not pid_path.exists():
        return None
    try:
        return int(pid_path.read_text(encoding='utf-8').strip())
    except ValueError:
        return None


def remove_pid_file(path: str = PID_FILE):
    Path(path).unlink(missing_ok=True)


def stop_bot(path: str = PID_FILE, timeout: float = STOP_TIMEOUT) -> bool:
    """Terminate the process named in the PID file; True when it is gone"""
    pid = read_pid_file(path)
    if pid is None:
        print("ℹ️ No running bot found (no PID file).")
        return False

    try:
        process = psutil.Process(pid)
        process.terminate()
        try:
            process.wait(timeout=timeout)
        except psutil.TimeoutExpired:
            process.kill()
            process.wait(timeout=timeout)
    except psutil.NoSuchProcess:
        print(f"ℹ️ Process {pid} was not running, removing stale PID file.")
        remove_pid_file(path)
        return False
    except (psutil.AccessDenied, psutil.TimeoutExpired) as e:
        print(f"❌ Could not stop process {pid}: {e}")
        return False

    remove_pid_file(path)
    print(f"✅ Stopped bot process {pid}.")
    return True


def stop_main():
    """Console entry point: stop a running bot"""
    sys.exit(0 if stop_bot() else 1)


def cleanup_main():
    """Console entry point: delete leftover temp audio files (run while the bot is stopped)"""
    print(f"🧹 Cleaning temporary files in: {Path(TEMP_DIR).resolve()}")
    removed = janitor.sweep_orphans(TEMP_DIR)
    if removed:
        print(f"🎉 Removed {removed} temporary file(s).")
    else:
        print("✅ No temporary files to clean.")
