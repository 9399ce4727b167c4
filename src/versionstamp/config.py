import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

logger = logging.getLogger(__name__)

TOKEN_VARIABLE = "SYSTEM_ACCESSTOKEN"
COLLECTION_URL_VARIABLE = "SYSTEM_TEAMFOUNDATIONCOLLECTIONURI"
SOURCE_VERSION_VARIABLE = "BUILD_SOURCEVERSION"
SOURCES_DIRECTORY_VARIABLE = "BUILD_SOURCESDIRECTORY"
DEBUG_VARIABLE = "SYSTEM_DEBUG"


class ConfigurationError(ValueError):
    """Raised for missing or invalid run configuration"""


def is_null_or_whitespace(value):
    return value is None or str(value).strip() == ""


def is_debug_enabled(environ=None):
    value = (environ if environ is not None else os.environ).get(DEBUG_VARIABLE)
    return bool(value) and (value.upper() == "TRUE" or value == "1")


@dataclass
class StoreSettings:
    """Where revision documents live in the extension data service"""

    publisher: str = "csdahlberg"
    extension: str = "versioning"
    scope_type: str = "Default"
    scope_value: str = "Current"
    collection: str = "Revisions"


@dataclass
class RunParameters:
    product_name: Optional[str] = None
    major: Optional[int] = None
    minor: Optional[int] = None
    patch: Optional[int] = None
    create_prerelease: bool = True
    prerelease_label: Optional[str] = None
    set_release_notes: bool = False
    release_notes: Optional[str] = None
    override_file_version_revision: bool = False
    file_version_revision_override: Optional[int] = None
    override_prerelease_revision: bool = False
    prerelease_revision_override: Optional[int] = None
    source_version: Optional[str] = None
    source_root: Optional[str] = None
    dry_run: bool = False
    store: StoreSettings = field(default_factory=StoreSettings)

    def validate(self):
        """Check required values before anything remote or on disk is touched"""
        if is_null_or_whitespace(self.product_name):
            raise ConfigurationError("A product name is required.")
        for name in ("major", "minor", "patch"):
            value = getattr(self, name)
            if value is None:
                raise ConfigurationError(f"The {name} version number is required.")
            if value < 0:
                raise ConfigurationError(f"The {name} version number must not be negative, got {value}.")
        if self.create_prerelease and is_null_or_whitespace(self.prerelease_label):
            raise ConfigurationError(
                "No Prerelease label was specified, but it is required because "
                "'Create Prerelease Version?' is true."
            )
        if is_null_or_whitespace(self.source_root):
            raise ConfigurationError("A sources directory is required.")


_INT_FIELDS = {"major", "minor", "patch", "file_version_revision_override", "prerelease_revision_override"}
_BOOL_FIELDS = {"create_prerelease", "set_release_notes", "override_file_version_revision",
                "override_prerelease_revision", "dry_run"}
_IMPLIED_FLAGS = {
    "release_notes": "set_release_notes",
    "file_version_revision_override": "override_file_version_revision",
    "prerelease_revision_override": "override_prerelease_revision",
}


def load_yaml(file_path):
    """Load YAML file using ruamel.yaml"""
    if not Path(file_path).exists():
        raise ConfigurationError(f"Settings file not found: {file_path}")

    yaml = YAML(typ="safe")
    try:
        with open(file_path, "r") as f:
            return yaml.load(f) or {}
    except YAMLError as e:
        raise ConfigurationError(f"Could not read settings file {file_path}: {e}") from e


def _coerce(name, value):
    if value is None:
        return None
    if name in _INT_FIELDS:
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"'{name.replace('_', '-')}' must be an integer, got {value!r}") from None
    if name in _BOOL_FIELDS:
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in ("true", "1", "yes")
    return str(value)


def apply_settings(params, settings):
    """Apply a settings mapping with kebab-case keys onto params"""
    if not isinstance(settings, dict):
        raise ConfigurationError("The settings file must contain a mapping.")

    known = {f.name for f in fields(RunParameters)} - {"store"}
    given = set()
    for key, value in settings.items():
        name = str(key).replace("-", "_")
        if name == "store":
            params.store = _store_settings(value)
        elif name in known:
            setattr(params, name, _coerce(name, value))
            given.add(name)
        else:
            raise ConfigurationError(f"Unknown setting '{key}'.")

    # A value implies its flag, as on the command line, unless the flag is set explicitly
    for value_name, flag_name in _IMPLIED_FLAGS.items():
        if value_name in given and flag_name not in given and getattr(params, value_name) is not None:
            setattr(params, flag_name, True)
    return params


def _store_settings(section):
    if not isinstance(section, dict):
        raise ConfigurationError("The 'store' setting must be a mapping.")
    store = StoreSettings()
    known = {f.name for f in fields(StoreSettings)}
    for key, value in section.items():
        name = str(key).replace("-", "_")
        if name not in known:
            raise ConfigurationError(f"Unknown store setting '{key}'.")
        setattr(store, name, str(value))
    return store


def apply_environment(params, environ=None):
    """Fill in values the pipeline provides through environment variables"""
    environ = environ if environ is not None else os.environ
    if params.source_version is None:
        params.source_version = environ.get(SOURCE_VERSION_VARIABLE) or None
    if params.source_root is None:
        params.source_root = environ.get(SOURCES_DIRECTORY_VARIABLE) or None
    return params


def get_store_credentials(environ=None):
    """Return (collection_url, token) from the pipeline environment"""
    environ = environ if environ is not None else os.environ

    collection_url = environ.get(COLLECTION_URL_VARIABLE)
    if not collection_url:
        raise ConfigurationError(f"The {COLLECTION_URL_VARIABLE} environment variable is not set.")

    token = environ.get(TOKEN_VARIABLE)
    if not token:
        raise ConfigurationError(
            f"The {TOKEN_VARIABLE} environment variable is not set. The Stamp Version Information"
            " build task requires access to the OAuth token to store revision numbers."
            " Please enable the 'Allow Scripts to access the OAuth Token' option for this build phase."
        )

    return collection_url, token
