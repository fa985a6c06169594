from __future__ import annotations

from github import Auth, Github


def get_repo(repo_name: str, token: str):
    return Github(auth=Auth.Token(token)).get_repo(repo_name)


def get_pull(repo, pr_number: int):
    return repo.get_pull(pr_number)


def compare(repo, base_sha: str, head_sha: str):
    """Return GitHub's comparison between two commits."""
    return repo.compare(base_sha, head_sha)
