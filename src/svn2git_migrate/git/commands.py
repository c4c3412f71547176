"""Argument vectors for the external tools a migration drives."""

import base64
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence
from urllib.parse import quote

# Namespace git-svn imports Subversion refs into: `trunk`, branches by name
# and tags under `tags/`.
SVN_REF_PREFIX = 'svn/'


def basic_credentials(user: Optional[str], token: Optional[str]) -> Optional[str]:
    """Base64 `user:token` pair for an HTTP Basic header, None without a token."""
    if not token:
        return None
    return base64.b64encode(f"{user or ''}:{token}".encode()).decode()


def auth_env(credentials: Optional[str]) -> Dict[str, str]:
    """Environment making git send credentials as a header.

    The header reaches git through `GIT_CONFIG_*` variables (git 2.31+), so it
    shows up neither in the process list nor in the repository configuration.
    """
    if not credentials:
        return {}
    return {
        'GIT_CONFIG_COUNT': '1',
        'GIT_CONFIG_KEY_0': 'http.extraHeader',
        'GIT_CONFIG_VALUE_0': f'Authorization: Basic {credentials}',
    }


def sanitize(text: str, secrets: Iterable[Optional[str]]) -> str:
    """Replace every secret (raw or URL-quoted) in text with ***TOKEN***."""
    result = text
    for secret in secrets:
        if secret:
            result = result.replace(secret, '***TOKEN***')
            quoted = quote(secret, safe='')
            if quoted != secret:
                result = result.replace(quoted, '***TOKEN***')
    return result


def mirror_clone(url: str, target: Path) -> List[str]:
    """Bare mirror clone of the (empty) destination project."""
    return ['git', 'clone', '--mirror', url, str(target)]


def svn_clone(
    svn_url: str,
    svn_group: str,
    svn_project: str,
    target: Path,
    username: Optional[str] = None,
) -> List[str]:
    """Clone a standard trunk/branches/tags layout through git-svn."""
    cmd = [
        'git',
        'svn',
        'clone',
        f'--trunk={svn_project}/trunk',
        f'--branches={svn_project}/branches',
        f'--tags={svn_project}/tags',
        f'--prefix={SVN_REF_PREFIX}',
    ]
    if username:
        cmd.extend(['--username', username])
    cmd.extend([f'{svn_url.rstrip("/")}/{svn_group}', str(target)])
    return cmd


def delete_files(bfg_command: Sequence[str], pattern: str, git_dir: Path) -> List[str]:
    """BFG pass removing every blob matching pattern from all commits."""
    return [
        *bfg_command,
        '--delete-files',
        pattern,
        '--no-blob-protection',
        str(git_dir),
    ]


def reflog_expire() -> List[str]:
    return ['git', 'reflog', 'expire', '--expire=now', '--all']


def gc_prune() -> List[str]:
    return ['git', 'gc', '--prune=now', '--aggressive']


def remote_add(name: str, url: str) -> List[str]:
    return ['git', 'remote', 'add', name, url]


def push_branch(remote: str, branch: str) -> List[str]:
    """Push the checked out history as the destination's branch."""
    return ['git', 'push', remote, f'HEAD:refs/heads/{branch}']


def push_svn_branches(remote: str) -> List[str]:
    """Push every imported Subversion branch except the mainline and tags.

    Negative refspecs need git 2.29+.
    """
    base = f'refs/remotes/{SVN_REF_PREFIX}'
    return [
        'git',
        'push',
        remote,
        f'{base}*:refs/heads/*',
        f'^{base}tags/*',
        f'^{base}trunk',
    ]


def push_svn_tags(remote: str) -> List[str]:
    """Push the imported Subversion tags as git tags."""
    base = f'refs/remotes/{SVN_REF_PREFIX}'
    return ['git', 'push', remote, f'{base}tags/*:refs/tags/*']
