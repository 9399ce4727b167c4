import argparse
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path

from . import config
from . import git as git_utils
from .config import ConfigurationError, RunParameters
from .orchestrator import stamp_all
from .revision import RevisionCounter
from .stampers import StampOptions
from .store import DocumentStore
from .version import resolve_version

logger = logging.getLogger(__name__)

PIPELINE_VARIABLE = "TF_BUILD"


class PipelineIssueHandler(logging.Handler):
    """Echo warnings and errors as Azure Pipelines logging commands"""

    def __init__(self, stream=None):
        super().__init__(level=logging.WARNING)
        self.stream = stream

    def emit(self, record):
        try:
            stream = self.stream if self.stream is not None else sys.stdout
            kind = "error" if record.levelno >= logging.ERROR else "warning"
            stream.write(f"##vso[task.logissue type={kind}]{record.getMessage()}\n")
            stream.flush()
        except Exception:
            self.handleError(record)


def in_pipeline(environ=None):
    return bool((environ if environ is not None else os.environ).get(PIPELINE_VARIABLE))


def setup_logging(environ=None):
    logging.basicConfig(
        level=logging.DEBUG if config.is_debug_enabled(environ) else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        stream=sys.stdout,
    )
    root = logging.getLogger()
    if in_pipeline(environ) and not any(isinstance(h, PipelineIssueHandler) for h in root.handlers):
        root.addHandler(PipelineIssueHandler())


def banner(title):
    print("=======================================")
    print(f"\t{title}")
    print("=======================================")


def build_parser():
    parser = argparse.ArgumentParser(
        prog='versionstamp',
        description='Compute build versions and stamp them into project files'
    )
    parser.add_argument('-c', '--config', help='Path to a YAML settings file')
    parser.add_argument('--product-name', help='Product whose revision counters are used')
    parser.add_argument('--major', type=int, help='Major version number')
    parser.add_argument('--minor', type=int, help='Minor version number')
    parser.add_argument('--patch', type=int, help='Patch version number')
    parser.add_argument('--prerelease', dest='create_prerelease', action='store_true', default=None,
                        help='Create a prerelease version (default)')
    parser.add_argument('--no-prerelease', dest='create_prerelease', action='store_false',
                        help='Create a release version without a suffix')
    parser.add_argument('--prerelease-label', help='Label of the prerelease suffix, e.g. beta')
    parser.add_argument('--release-notes', help='Release notes to stamp into package metadata')
    parser.add_argument('--file-version-revision', type=int, metavar='N',
                        help='Force the file version revision to N')
    parser.add_argument('--prerelease-revision', type=int, metavar='N',
                        help='Force the prerelease revision to N')
    parser.add_argument('--source-version', help='Commit identifier to stamp as the repository commit')
    parser.add_argument('--sources-directory', help='Root of the tree to stamp')
    parser.add_argument('--dry-run', action='store_true', default=None,
                        help='Report changes without saving revisions or writing files')
    return parser


def parameters_from_args(args, environ=None):
    """Merge defaults, the settings file, command line and environment"""
    params = RunParameters()
    if args.config:
        config.apply_settings(params, config.load_yaml(args.config))

    simple = {
        'product_name': args.product_name,
        'major': args.major,
        'minor': args.minor,
        'patch': args.patch,
        'create_prerelease': args.create_prerelease,
        'prerelease_label': args.prerelease_label,
        'source_version': args.source_version,
        'source_root': args.sources_directory,
        'dry_run': args.dry_run,
    }
    for name, value in simple.items():
        if value is not None:
            setattr(params, name, value)

    if args.release_notes is not None:
        params.set_release_notes = True
        params.release_notes = args.release_notes
    if args.file_version_revision is not None:
        params.override_file_version_revision = True
        params.file_version_revision_override = args.file_version_revision
    if args.prerelease_revision is not None:
        params.override_prerelease_revision = True
        params.prerelease_revision_override = args.prerelease_revision

    config.apply_environment(params, environ)
    if params.source_root is None:
        params.source_root = os.getcwd()
    return params


def run(params, environ=None, store=None, now=None):
    """Compose the versions for this run and stamp them into the source tree"""
    params.validate()
    if not Path(params.source_root).is_dir():
        raise ConfigurationError(f"The sources directory '{params.source_root}' does not exist.")

    if store is None:
        collection_url, token = config.get_store_credentials(environ)
        store = DocumentStore(collection_url, token, **asdict(params.store))

    if params.source_version is None:
        params.source_version = git_utils.head_commit(params.source_root)

    if params.dry_run:
        logger.info("Running in dry-run mode - no revisions will be saved and no files written")

    version = resolve_version(params, RevisionCounter(store), now=now, peek=params.dry_run)
    logger.info(f"AssemblyVersion: {version.assembly_version}")
    logger.info(f"AssemblyFileVersion: {version.assembly_file_version}")
    logger.info(f"AssemblyInformationalVersion: {version.assembly_informational_version}")

    options = StampOptions(
        set_release_notes=params.set_release_notes,
        release_notes=params.release_notes,
        source_version=params.source_version,
        dry_run=params.dry_run,
    )
    return stamp_all(params.source_root, version, options)


def main(argv=None, environ=None):
    environ = environ if environ is not None else os.environ
    setup_logging(environ)
    banner("Stamp Version Information")

    args = build_parser().parse_args(argv)
    try:
        params = parameters_from_args(args, environ)
        run(params, environ)
    except Exception as e:
        logger.error(str(e))
        logger.debug("Run failed", exc_info=True)
        if in_pipeline(environ):
            print(f"##vso[task.complete result=Failed;]{e}")
        return 1
    return 0
