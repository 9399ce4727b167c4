import logging
import os
from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from pathlib import Path
from typing import List

from .config import ConfigurationError
from .stampers import StampOptions, stamp_assembly_info, stamp_csproj, stamp_nuspec, stamp_vsixmanifest

logger = logging.getLogger(__name__)

STAMPERS = (
    ("**/*AssemblyInfo.cs", stamp_assembly_info),
    ("**/*.csproj", stamp_csproj),
    ("**/*.nuspec", stamp_nuspec),
    ("**/*.vsixmanifest", stamp_vsixmanifest),
)


@dataclass
class StampSummary:
    files_examined: int = 0
    changed: List[Path] = field(default_factory=list)

    @property
    def any_changed(self):
        return bool(self.changed)


def find_files(source_root):
    """Recursively list every file below source_root, sorted"""
    found = []
    for root, dirs, files in os.walk(source_root):
        dirs.sort()
        for name in sorted(files):
            found.append(Path(root) / name)
    return found


def matches(path, source_root, pattern):
    """Match a '**/'-prefixed pattern against any depth, plain patterns against the relative path"""
    relative = Path(path).relative_to(source_root).as_posix()
    if pattern.startswith("**/"):
        return fnmatchcase(Path(relative).name, pattern[3:])
    return fnmatchcase(relative, pattern)


def stamp_all(source_root, version, options=StampOptions()):
    """Stamp every supported file under source_root with the composed version"""
    source_root = Path(source_root)
    if not source_root.is_dir():
        raise ConfigurationError(f"The sources directory '{source_root}' does not exist.")

    logger.info(f"Searching for files in '{source_root}' to stamp version info in...")
    all_paths = find_files(source_root)

    summary = StampSummary()
    for pattern, stamp in STAMPERS:
        for path in all_paths:
            if not matches(path, source_root, pattern):
                continue
            summary.files_examined += 1
            if stamp(path, version, options):
                summary.changed.append(path)

    logger.debug(f"Examined {summary.files_examined} files, {len(summary.changed)} changed.")
    if not summary.any_changed:
        logger.warning("No files were updated.")
    return summary
