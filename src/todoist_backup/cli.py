"""Command-line interface for the Todoist backup application."""

import asyncio
import sys
from functools import wraps
from pathlib import Path
from typing import Any, Dict, Optional

import click
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from . import __version__
from .auth.cloud_auth import S3Auth
from .config.settings import DEFAULT_CONFIG_FILE, BackupConfig, load_config
from .destinations.s3_store import S3BackupStore, from_version
from .exceptions import ConfigError, ListingError, SyncError
from .sources.todoist_api import TodoistClient
from .sync.backup_manager import BackupManager, SyncResult, run_logged
from .sync.scheduler import periodic
from .utils.logging import setup_logging

console = Console()


def config_options(f):
    """Options shared by every command that talks to Todoist or storage."""
    options = [
        click.option('--config', '-c', 'config_file',
                     type=click.Path(dir_okay=False, path_type=Path),
                     default=DEFAULT_CONFIG_FILE, show_default=True,
                     envvar='TODOISTBACKUP_CONFIG_FILE',
                     help='Configuration file (YAML or JSON), also TODOISTBACKUP_CONFIG_FILE'),
        click.option('--client-token',
                     help='Todoist API token, also TODOISTBACKUP_CLIENT_TOKEN'),
        click.option('--client-timeout', type=int,
                     help='Todoist request timeout in seconds, also TODOISTBACKUP_CLIENT_TIMEOUT'),
        click.option('--store-bucket',
                     help='S3 bucket name, also TODOISTBACKUP_STORE_BUCKET'),
        click.option('--store-endpoint',
                     help='S3 endpoint address, also TODOISTBACKUP_STORE_ENDPOINT'),
        click.option('--store-region',
                     help='S3 region, also TODOISTBACKUP_STORE_REGION'),
        click.option('--store-access-key',
                     help='S3 access key, also TODOISTBACKUP_STORE_ACCESS_KEY'),
        click.option('--store-secret-key',
                     help='S3 secret key, also TODOISTBACKUP_STORE_SECRET_KEY'),
        click.option('--store-insecure', is_flag=True,
                     help='Connect to S3 without TLS, also TODOISTBACKUP_STORE_INSECURE'),
    ]
    for option in reversed(options):
        f = option(f)
    return f


def _overrides(params: Dict[str, Any]) -> Dict[str, Any]:
    """Map command-line options onto configuration sections."""
    overrides: Dict[str, Any] = {'client': {}, 'store': {}}
    for name, value in params.items():
        if value is None or value is False:
            continue
        section, _, key = name.partition('_')
        if section in overrides and key:
            overrides[section][key] = value
        elif name == 'daemon':
            overrides['daemon'] = True
    return overrides


def _load(config_file: Path, params: Dict[str, Any]) -> BackupConfig:
    """Load configuration or exit with an error message."""
    explicit = config_file != DEFAULT_CONFIG_FILE
    try:
        config = load_config(config_file, overrides=_overrides(params), require_file=explicit)
    except ConfigError as e:
        console.print(f"❌ Loading configuration: {e}", style="red bold")
        sys.exit(1)

    setup_logging(log_level=config.log_level, log_file=config.log_file)
    return config


def _build_manager(config: BackupConfig, ensure_bucket: bool = True) -> BackupManager:
    """Create the Todoist client and the storage backend."""
    try:
        client = TodoistClient(config.client)
    except Exception as e:
        console.print(f"❌ Initializing client: {e}", style="red bold")
        sys.exit(1)

    try:
        store = S3BackupStore(S3Auth.from_config(config.store), config.store.bucket)
        if ensure_bucket:
            store.ensure_bucket()
    except Exception as e:
        console.print(f"❌ Initializing storage: {e}", style="red bold")
        sys.exit(1)

    return BackupManager(client, store)


def with_config(f):
    """Load configuration from the shared options and pass it on."""
    @config_options
    @wraps(f)
    def wrapper(config_file, **params):
        config_params = {k: params.pop(k) for k in list(params)
                         if k.startswith(('client_', 'store_'))}
        config_params['daemon'] = params.get('daemon')
        return f(_load(config_file, config_params), **params)
    return wrapper


@click.group()
@click.version_option(version=__version__)
def cli():
    """Todoist Backup Tool

    Mirrors the backup archives offered by the Todoist API into an S3
    compatible bucket, skipping backups that are already stored.
    """
    pass


@cli.command()
@click.option('--daemon', is_flag=True,
              help='Run the backup every 24 hours, also TODOISTBACKUP_DAEMON')
@with_config
def backup(config: BackupConfig, daemon: bool):
    """Download missing backups into storage."""
    manager = _build_manager(config)

    if config.daemon:
        console.print(f"🔁 Daemon mode: running every {config.interval_hours:g} hours")
        try:
            asyncio.run(periodic(config.interval_seconds, lambda: _run_and_display(manager)))
        except KeyboardInterrupt:
            console.print("👋 Stopped", style="yellow")
        return

    try:
        result = asyncio.run(manager.run())
    except KeyboardInterrupt:
        console.print("👋 Stopped, backup run cancelled", style="yellow")
        sys.exit(130)
    except ListingError as e:
        console.print(f"❌ {e}", style="red bold")
        sys.exit(1)
    except SyncError as e:
        _display_errors(e)
        sys.exit(1)

    _display_result(result)


async def _run_and_display(manager: BackupManager) -> Optional[SyncResult]:
    result = await run_logged(manager)
    if result is not None:
        _display_result(result)
    return result


def _display_result(result: SyncResult):
    """Display run results in a table."""
    table = Table(title="Backup Results")
    table.add_column("Remote Backups", justify="right", style="cyan")
    table.add_column("Already Stored", justify="right", style="yellow")
    table.add_column("Downloaded", justify="right", style="green")
    table.add_column("Data Transferred", justify="right")
    table.add_column("Duration", justify="right")

    table.add_row(
        str(result.found),
        str(result.existing),
        str(result.added),
        _format_bytes(result.bytes_transferred),
        f"{result.duration:.1f}s",
    )
    console.print(table)


def _display_errors(error: SyncError):
    rprint(f"\n⚠️ [yellow]{len(error.errors)} backups failed:[/yellow]")
    for item in error.errors:
        console.print(f"   • {item}", style="red", markup=False)


@cli.command()
@with_config
def test(config: BackupConfig):
    """Test connections to the Todoist API and storage."""
    manager = _build_manager(config, ensure_bucket=False)

    console.print("🔍 Testing connections...\n")
    results = manager.test_connections()

    table = Table(title="Connection Test Results")
    table.add_column("Service", style="cyan")
    table.add_column("Status", style="magenta")

    for service, status in results.items():
        status_text = "✅ Connected" if status else "❌ Failed"
        status_style = "green" if status else "red"
        table.add_row(service, f"[{status_style}]{status_text}[/{status_style}]")

    console.print(table)

    if all(results.values()):
        console.print("\n🎉 All connections successful!", style="green bold")
    else:
        console.print("\n⚠️ Some connections failed. Check your configuration.", style="yellow bold")
        sys.exit(1)


@cli.command()
@with_config
def versions(config: BackupConfig):
    """List Todoist backups and whether they are stored."""
    manager = _build_manager(config, ensure_bucket=False)
    try:
        remote = manager.client.list_backups()
        stored = manager.store.list_versions()
    except Exception as e:
        console.print(f"❌ Listing backups: {e}", style="red bold")
        sys.exit(1)

    table = Table(title="Todoist Backups")
    table.add_column("Version", style="cyan")
    table.add_column("Storage Key")
    table.add_column("Stored", justify="center")

    for item in remote:
        is_stored = item.version in stored
        table.add_row(item.version, from_version(item.version),
                      "[green]yes[/green]" if is_stored else "[yellow]no[/yellow]")
    console.print(table)

    remote_versions = {item.version for item in remote}
    rprint(f"\n📊 {len(remote)} remote, {len(stored)} stored, "
           f"{len(remote_versions - stored)} missing")


@cli.command()
@click.option('--config', '-c',
              type=click.Path(dir_okay=False, path_type=Path),
              default=DEFAULT_CONFIG_FILE,
              help='Path to save configuration file')
def init(config: Path):
    """Initialize a new configuration file."""
    if config.exists():
        if not click.confirm(f"Configuration file {config} already exists. Overwrite?"):
            return

    sample_config = {
        'client': {
            'token': 'your-todoist-api-token',
            'timeout': 5,
        },
        'store': {
            'bucket': 'todoist-backups',
            'endpoint': 's3.amazonaws.com',
            'region': 'us-east-1',
            'access_key': 'your-access-key',
            'secret_key': 'your-secret-key',
            'insecure': False,
        },
        'daemon': False,
    }

    BackupConfig(**sample_config).to_yaml(config)

    console.print(f"✅ Configuration saved to {config}", style="green")
    console.print("\n📝 Next steps:")
    console.print("1. Edit the configuration file with your token and bucket")
    console.print("2. Run 'todoist-backup test' to verify connections")
    console.print("3. Run 'todoist-backup backup' to start backing up")


def _format_bytes(bytes_size: float) -> str:
    """Format bytes as human readable string."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_size < 1024.0:
            return f"{bytes_size:.1f} {unit}"
        bytes_size /= 1024.0
    return f"{bytes_size:.1f} PB"


if __name__ == '__main__':
    cli()
