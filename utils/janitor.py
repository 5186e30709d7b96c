"""
Temp-file janitor
Removes downloaded artifacts and the partial files an interrupted download leaves behind
"""
import logging
import uuid
from pathlib import Path
from typing import List, Union

from config.settings import TEMP_DIR, TEMP_FILE_PREFIX

logger = logging.getLogger('music.janitor')

SIDECAR_SUFFIXES = ('.part', '.ytdl', '.temp', '.tmp', '.webm.part')
SIDECAR_MARKERS = ('.part-Frag',)

PathLike = Union[str, Path]


def new_artifact_path(directory: PathLike = TEMP_DIR) -> Path:
    """Fresh artifact path temp_audio_<uuid>.mp3 inside directory (created if missing)"""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    return directory / f'{TEMP_FILE_PREFIX}{uuid.uuid4().hex}.mp3'


def output_template(artifact_path: PathLike) -> str:
    """Downloader output template that lands the extracted audio on artifact_path"""
    artifact_path = Path(artifact_path)
    return str(artifact_path.with_suffix('.%(ext)s'))


def _is_sidecar(name: str, stem: str) -> bool:
    if not name.startswith(stem):
        return False
    if any(marker in name for marker in SIDECAR_MARKERS):
        return True
    return name.endswith(SIDECAR_SUFFIXES)


def _unlink(path: Path) -> bool:
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning(f"⚠️ Could not delete {path}: {e}")
        return False


def cleanup(artifact_path: PathLike) -> bool:
    """Remove the primary artifact; a missing file is not an error"""
    removed = _unlink(Path(artifact_path))
    if removed:
        logger.debug(f"🗑️ Removed {artifact_path}")
    return removed


def cleanup_sidecars(artifact_path: PathLike) -> List[Path]:
    """
    Remove files next to the artifact that share its base name: partial
    download suffixes and any intermediate container the extractor left
    (e.g. the .webm before conversion to .mp3).
    """
    artifact_path = Path(artifact_path)
    directory = artifact_path.parent
    stem = artifact_path.stem
    removed = []
    if not directory.is_dir():
        return removed

    for candidate in directory.iterdir():
        if candidate == artifact_path or not candidate.is_file():
            continue
        name = candidate.name
        intermediate = candidate.stem == stem
        if (intermediate or _is_sidecar(name, stem)) and _unlink(candidate):
            removed.append(candidate)

    if removed:
        logger.debug(f"🗑️ Removed {len(removed)} sidecar file(s) for {artifact_path.name}")
    return removed


def cleanup_all(artifact_path: PathLike):
    """Artifact plus sidecars; used on every exit path of a download"""
    cleanup(artifact_path)
    cleanup_sidecars(artifact_path)


def sweep_orphans(directory: PathLike = TEMP_DIR) -> int:
    """Delete every temp_audio_* file left in directory (startup, shutdown, cleanup script)"""
    directory = Path(directory)
    if not directory.is_dir():
        return 0

    removed = 0
    for candidate in directory.glob(f'{TEMP_FILE_PREFIX}*'):
        if candidate.is_file() and _unlink(candidate):
            removed += 1
    if removed:
        logger.info(f"🧹 Removed {removed} orphaned temp file(s) from {directory}")
    return removed
