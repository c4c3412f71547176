"""GitLab API access."""

from .client import APIResponse, GitLabClient
from .provisioner import RemoteProjectProvisioner

__all__ = ['APIResponse', 'GitLabClient', 'RemoteProjectProvisioner']
