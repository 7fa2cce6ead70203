# ==============================================================================
# Git backup of the data directory
# ==============================================================================

import os
from datetime import datetime

import git  # GitPython

LOCK_FILES = [
    "index.lock",
    "HEAD.lock",
    "refs/heads/master.lock",
    "refs/heads/main.lock",
    "config.lock",
]


def cleanup_stale_git_locks(repo_path):
    """
    Removes lock files left behind by a crashed run; they would block
    every later commit.
    """
    git_dir = os.path.join(repo_path, ".git")
    if not os.path.isdir(git_dir):
        return

    for lock_file in LOCK_FILES:
        lock_path = os.path.join(git_dir, lock_file)
        if os.path.exists(lock_path):
            try:
                os.remove(lock_path)
                print(f"[Git] Removed stale lock file: {lock_file}")
            except OSError as e:
                print(f"[Git] Failed to remove lock file {lock_file}: {e}")


class GitBackup:
    """Versions the library directory; enabled only when a remote URL is given."""

    def __init__(self, repo_root, remote_url=None):
        self.repo_root = repo_root
        self.remote_url = remote_url if remote_url is not None else os.environ.get("GIT_REPO_URL")
        self._initialized = False

    @property
    def enabled(self):
        return bool(self.remote_url)

    def initialize(self):
        """Initializes the repo at repo_root and registers 'origin'."""
        if not self.enabled or self._initialized:
            return
        cleanup_stale_git_locks(self.repo_root)
        try:
            try:
                repo = git.Repo(self.repo_root)
            except (git.exc.InvalidGitRepositoryError, git.exc.NoSuchPathError):
                os.makedirs(self.repo_root, exist_ok=True)
                repo = git.Repo.init(self.repo_root)
                print(f"[Git] Initialized new repository at {self.repo_root}")

            if 'origin' not in [remote.name for remote in repo.remotes]:
                repo.create_remote('origin', self.remote_url)
                print(f"[Git] Remote 'origin' added: {self.remote_url}")
            self._initialized = True
        except git.exc.GitError as e:
            print(f"[Git Init Error] {e}")

    def commit_local(self, message):
        """Commits all changes in repo_root without pushing."""
        if not self.enabled:
            return False
        self.initialize()
        try:
            repo = git.Repo(self.repo_root)
            repo.git.add('.')
            if not repo.is_dirty(untracked_files=True):
                return False
            repo.index.commit(message)
            print(f"[Git] Committed (Local): {message}")
            return True
        except git.exc.GitError as e:
            print(f"[Git Commit Error] {e}")
            return False

    def push_remote(self):
        if not self.enabled:
            print("[Warning] GIT_REPO_URL not set. Git backup disabled.")
            return False
        self.initialize()
        try:
            repo = git.Repo(self.repo_root)
            try:
                repo.git.push('origin', 'main')
            except git.exc.GitCommandError:
                repo.git.push('origin', 'master')
            print(f"[Git] Pushed at {datetime.now().strftime('%H:%M:%S')}")
            return True
        except git.exc.GitError as e:
            print(f"[Git Push Error] {e}")
            return False
