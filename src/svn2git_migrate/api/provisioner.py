"""Destination project provisioning on GitLab."""

from urllib.parse import quote

from loguru import logger

from ..models.group import Group
from ..models.project import Project, ProjectCreate
from .client import GitLabClient


class RemoteProjectProvisioner:
    """Resolves destination groups and creates empty projects in them."""

    def __init__(self, client: GitLabClient):
        """Initialize provisioner.

        Args:
            client: Destination GitLab API client
        """
        self.client = client
        self.logger = logger.bind(component='RemoteProjectProvisioner')

    @property
    def base_url(self) -> str:
        return self.client.config.url.rstrip('/')

    def group_url(self, group_path: str) -> str:
        return f'{self.base_url}/{group_path.strip("/")}'

    def project_url(self, group_path: str, project_name: str) -> str:
        """HTTP clone URL of a project, without credentials."""
        return f'{self.group_url(group_path)}/{project_name}.git'

    async def resolve_group(self, group_path: str) -> Group:
        """Look a group up by its full path.

        Args:
            group_path: Full group path, e.g. newhost/app

        Returns:
            The group

        Raises:
            GitLabNotFoundError: If the group does not exist
            GitLabAPIError: For any other API failure
        """
        encoded = quote(group_path.strip('/'), safe='')
        response = await self.client.get_async(f'/groups/{encoded}')
        group = Group(**response.data)
        self.logger.info(f'Resolved group {group_path} to id {group.id}')
        return group

    async def create_project(self, group: Group, project_name: str) -> Project:
        """Create an empty private project under a group.

        Args:
            group: Destination group
            project_name: Name of the new project

        Returns:
            The created project

        Raises:
            GitLabConflictError: If the group already has a project of that name
            GitLabPermissionError: If the caller may not create projects there
            GitLabAPIError: For any other API failure
        """
        payload = ProjectCreate(name=project_name, namespace_id=group.id)
        response = await self.client.post_async('/projects', data=payload.dict())
        project = Project(**response.data)
        self.logger.info(
            f'Created project {project.path_with_namespace or project.name} '
            f'with id {project.id}'
        )
        return project
