import logging

import git

logger = logging.getLogger(__name__)


def head_commit(repo_path):
    """Return the HEAD commit hash of the work tree containing repo_path, or None"""
    try:
        repo_instance = git.Repo(repo_path, search_parent_directories=True)
    except (git.InvalidGitRepositoryError, git.NoSuchPathError):
        logger.debug(f"No git repository found at {repo_path}")
        return None

    try:
        return repo_instance.head.commit.hexsha
    except ValueError:
        # Fresh repository without any commits
        logger.debug(f"Repository at {repo_path} has no commits yet")
        return None
    finally:
        repo_instance.close()
