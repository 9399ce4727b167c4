import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional

from .config import ConfigurationError, is_null_or_whitespace

logger = logging.getLogger(__name__)

DAY_CODE_EPOCH = date(2000, 1, 1)


@dataclass(frozen=True)
class ComposedVersion:
    assembly_version: str
    assembly_file_version: str
    assembly_informational_version: str
    suffix: Optional[str] = None


def day_code(now=None):
    """Number of whole days between 2000-01-01 and the UTC date of now"""
    now = now or datetime.now(timezone.utc)
    return (now.astimezone(timezone.utc).date() - DAY_CODE_EPOCH).days


def file_version_key(major, minor, day):
    return f"AssemblyFileVersion {major}.{minor}.{day}"


def prerelease_key(major, minor, patch, label):
    return f"AssemblyInformationalVersion {major}.{minor}.{patch}-{label}"


def compose_version(major, minor, patch, day, file_revision,
                    prerelease=False, label=None, prerelease_revision=None):
    assembly_version = f"{major}.{minor}.{patch}.0"
    assembly_file_version = f"{major}.{minor}.{day}.{file_revision}"

    if prerelease:
        suffix = f"{label}{prerelease_revision:02d}"
        informational = f"{major}.{minor}.{patch}-{suffix}"
    else:
        suffix = None
        informational = f"{major}.{minor}.{patch}"

    return ComposedVersion(assembly_version, assembly_file_version, informational, suffix)


def resolve_version(params, counter, now=None, peek=False):
    """
    Compose the run's versions, drawing both revisions from the counter.

    The file version revision is keyed by major.minor.daycode so builds on
    the same UTC day share a counter. The prerelease revision is keyed by
    major.minor.patch-label. With ``peek`` the counter is only read.
    """
    if params.create_prerelease and is_null_or_whitespace(params.prerelease_label):
        raise ConfigurationError(
            "No Prerelease label was specified, but it is required because "
            "'Create Prerelease Version?' is true."
        )

    draw = counter.peek_revision if peek else counter.next_revision
    day = day_code(now)

    file_key = file_version_key(params.major, params.minor, day)
    file_revision = draw(params.product_name, file_key,
                         params.override_file_version_revision,
                         params.file_version_revision_override)
    logger.debug(f"Using revision {file_revision} for '{file_key}'")

    prerelease_revision = None
    if params.create_prerelease:
        release_key = prerelease_key(params.major, params.minor, params.patch, params.prerelease_label)
        prerelease_revision = draw(params.product_name, release_key,
                                   params.override_prerelease_revision,
                                   params.prerelease_revision_override)
        logger.debug(f"Using revision {prerelease_revision} for '{release_key}'")

    return compose_version(params.major, params.minor, params.patch, day, file_revision,
                           params.create_prerelease, params.prerelease_label, prerelease_revision)
