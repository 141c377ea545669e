"""Sound files: picking one, how loud, and where it lives.

Sound ids are paths relative to the sounds directory, e.g.
``acknowledge1.wav`` or ``peon/yes3.wav``.
"""

from __future__ import annotations

import os
import random
from typing import Optional, Sequence

SOUND_SUFFIXES = (".wav", ".mp3")

WHISPER_LEVEL = 1


def volume_curve(level: float, whisper: bool = False) -> float:
    """Map a 1-10 loudness level to a 0.0-1.0 playback amplitude.

    Perceived loudness is roughly logarithmic, so the level is normalised
    and squared: 10 → 1.0, 5 → 0.25, 1 → 0.01.  Whispered mappings always
    use WHISPER_LEVEL.  Out-of-range levels are not validated here.
    """
    if whisper:
        level = WHISPER_LEVEL
    normalized = level / 10
    return normalized ** 2


def select_sound(sounds: Sequence[str], rng: Optional[random.Random] = None) -> Optional[str]:
    """Pick one sound uniformly at random. Returns None for an empty list."""
    if not sounds:
        return None
    return (rng or random).choice(list(sounds))


def resolve_sound_path(sounds_dir: str, sound_id: str) -> Optional[str]:
    """Absolute path for *sound_id*, or None if it escapes *sounds_dir*."""
    if not sound_id:
        return None
    root = os.path.realpath(sounds_dir)
    path = os.path.realpath(os.path.join(root, sound_id))
    if path != root and not path.startswith(root + os.sep):
        return None
    return path


def list_sound_directories(sounds_dir: str) -> list[str]:
    """``"."`` followed by the sorted subdirectories of *sounds_dir*.

    Returns an empty list if the sounds directory does not exist.
    """
    if not os.path.isdir(sounds_dir):
        return []
    subdirs = sorted(
        entry.name for entry in os.scandir(sounds_dir) if entry.is_dir()
    )
    return ["."] + subdirs


def list_sounds_in_directory(sounds_dir: str, dir_name: str = ".") -> list[str]:
    """Sorted sound file names directly inside one sounds subdirectory."""
    target = sounds_dir if dir_name in (".", "") else resolve_sound_path(sounds_dir, dir_name)
    if not target or not os.path.isdir(target):
        return []
    return sorted(
        name for name in os.listdir(target)
        if name.lower().endswith(SOUND_SUFFIXES)
    )
