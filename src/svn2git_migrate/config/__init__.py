"""Configuration loading."""

from .config import Config, GitConfig, GitLabInstanceConfig, SvnConfig

__all__ = ['Config', 'GitConfig', 'GitLabInstanceConfig', 'SvnConfig']
