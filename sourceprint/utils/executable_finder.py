# -*- coding: utf-8 -*-
"""
sourceprint/utils/executable_finder.py

Locates external tools the core shells out to (currently only ffprobe).
"""

import logging
import os
import shutil
import sys
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)

# Subdirectories checked next to the package root and inside a frozen bundle
_COMMON_EXECUTABLE_SUBFOLDERS = ["ffmpeg_bin", "bin"]


def _candidate_dirs(extra_dirs: Optional[Iterable[str]]) -> List[str]:
    dirs: List[str] = []
    if getattr(sys, 'frozen', False) and hasattr(sys, '_MEIPASS'):
        bundle_dir = sys._MEIPASS
        dirs.append(bundle_dir)
        dirs.extend(os.path.join(bundle_dir, sub) for sub in _COMMON_EXECUTABLE_SUBFOLDERS)
    else:
        # sourceprint/utils/ -> repository root
        app_root_dir = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
        dirs.extend(os.path.join(app_root_dir, sub) for sub in _COMMON_EXECUTABLE_SUBFOLDERS)
    if extra_dirs:
        dirs.extend(extra_dirs)
    return dirs


def find_executable(name: str, extra_dirs: Optional[Iterable[str]] = None) -> Optional[str]:
    """
    Locates an external executable by its base name (e.g. "ffprobe").

    Search order:
    1.  Environment override ``SOURCEPRINT_<NAME>`` (e.g. SOURCEPRINT_FFPROBE).
    2.  The PyInstaller bundle directory and its ``ffmpeg_bin/``, ``bin/``
        subfolders, or, when not frozen, those subfolders under the repo root.
    3.  Any `extra_dirs` supplied by the caller.
    4.  The system PATH via ``shutil.which``.

    Returns:
        Absolute path to the executable, or None if it could not be located.
    """
    executable_name = f"{name}.exe" if os.name == 'nt' else name

    env_key = f"SOURCEPRINT_{name.upper()}"
    env_path = os.environ.get(env_key)
    if env_path:
        if os.path.isfile(env_path):
            logger.info("Using '%s' from %s: %s", name, env_key, env_path)
            return os.path.abspath(env_path)
        logger.warning("%s points to a missing file (%s), ignoring it.", env_key, env_path)

    for directory in _candidate_dirs(extra_dirs):
        exe_path = os.path.join(directory, executable_name)
        if os.path.isfile(exe_path):
            logger.info("Found '%s' in: %s", name, directory)
            return os.path.abspath(exe_path)

    exe_path_in_path = shutil.which(name)
    if exe_path_in_path:
        logger.debug("Found '%s' executable in system PATH: %s", name, exe_path_in_path)
        return os.path.abspath(exe_path_in_path)

    logger.error("Executable '%s' could not be located (bundle, %s, extra dirs, PATH).",
                 name, ', '.join(_COMMON_EXECUTABLE_SUBFOLDERS))
    return None
