"""Configuration management for the Todoist backup application."""

from .settings import BackupConfig, ClientConfig, StoreConfig, load_config

__all__ = ["BackupConfig", "ClientConfig", "StoreConfig", "load_config"]
