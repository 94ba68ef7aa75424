import logging
import os

import click
from rich.logging import RichHandler

from .constants import (
    DEFAULT_BACKUP_ROOT,
    DEFAULT_SOURCE_RELEASE,
    DEFAULT_TARGET_RELEASE,
    MIN_FREE_SPACE_GB,
    NETWORK_TIMEOUT_SECONDS,
    REBOOT_DELAY_MINUTES,
)
from .core import DebianUpgrader, UpgraderError
from .services.config_loader import ConfigLoader


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


@click.command()
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help="Path to a YAML configuration file. Defaults to .debupgrader.yml or /etc/debupgrader.yml.",
)
@click.option(
    "--mode",
    required=False,
    help="Upgrade mode: 1=auto, 2=full, 3=safe, 4=minimal, 5=custom, 0=exit. Prompts when omitted.",
)
@click.option(
    "--yes",
    "-y",
    "auto_confirm",
    is_flag=True,
    default=None,
    help="Answer yes to every confirmation except reboot.",
)
@click.option("--skip-disk-check", is_flag=True, default=None, help="Do not check free disk space.")
@click.option("--source-release", required=False, help=f"Release to upgrade from (default: {DEFAULT_SOURCE_RELEASE})")
@click.option("--target-release", required=False, help=f"Release to upgrade to (default: {DEFAULT_TARGET_RELEASE})")
@click.option(
    "--backup-root",
    required=False,
    type=click.Path(),
    help=f"Directory receiving timestamped backups (default: {DEFAULT_BACKUP_ROOT})",
)
@click.option(
    "--min-free-space-gb",
    required=False,
    type=float,
    default=None,
    help=f"Free space required on the apt cache mount (default: {MIN_FREE_SPACE_GB})",
)
@click.option(
    "--network-timeout",
    required=False,
    type=float,
    default=None,
    help="Timeout in seconds for the mirror reachability probe.",
)
@click.option(
    "--reboot/--no-reboot",
    default=None,
    help="Reboot (or not) after the upgrade without asking.",
)
@click.option(
    "--reboot-delay-minutes",
    required=False,
    type=int,
    default=None,
    help=f"Minutes before the scheduled reboot (default: {REBOOT_DELAY_MINUTES})",
)
@click.option(
    "--dry-run",
    is_flag=True,
    default=None,
    help="Print the upgrade plan without changing the system.",
)
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to an additional log file")
def main(
    config,
    mode,
    auto_confirm,
    skip_disk_check,
    source_release,
    target_release,
    backup_root,
    min_free_space_gb,
    network_timeout,
    reboot,
    reboot_delay_minutes,
    dry_run,
    verbose,
    log_file,
):
    """Upgrade a Debian system to the next release."""
    logger = logging.getLogger("debupgrader")

    try:
        config_loader = ConfigLoader()
        resolved_config = config or config_loader.find_default(os.getcwd())
        config_values = config_loader.load(resolved_config)
    except UpgraderError as exc:
        raise click.ClickException(str(exc)) from exc

    mode = _resolve_option(mode, config_values, "mode")
    auto_confirm = bool(_resolve_option(auto_confirm, config_values, "auto_confirm", default=False))
    skip_disk_check = bool(
        _resolve_option(skip_disk_check, config_values, "skip_disk_check", default=False)
    )
    source_release = str(
        _resolve_option(source_release, config_values, "source_release", default=DEFAULT_SOURCE_RELEASE)
    )
    target_release = str(
        _resolve_option(target_release, config_values, "target_release", default=DEFAULT_TARGET_RELEASE)
    )
    backup_root = str(_resolve_option(backup_root, config_values, "backup_root", default=DEFAULT_BACKUP_ROOT))
    min_free_space_gb = float(
        _resolve_option(min_free_space_gb, config_values, "min_free_space_gb", default=MIN_FREE_SPACE_GB)
    )
    network_timeout = float(
        _resolve_option(network_timeout, config_values, "network_timeout", default=NETWORK_TIMEOUT_SECONDS)
    )
    reboot = _resolve_option(reboot, config_values, "reboot")
    reboot_delay_minutes = int(
        _resolve_option(
            reboot_delay_minutes,
            config_values,
            "reboot_delay_minutes",
            default=REBOOT_DELAY_MINUTES,
        )
    )
    dry_run = bool(_resolve_option(dry_run, config_values, "dry_run", default=False))
    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    log_file = _resolve_option(log_file, config_values, "log_file")

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)

    try:
        upgrader = DebianUpgrader(
            mode=mode,
            auto_confirm=auto_confirm,
            skip_disk_check=skip_disk_check,
            source_release=source_release,
            target_release=target_release,
            backup_root=backup_root,
            min_free_space_gb=min_free_space_gb,
            network_timeout=network_timeout,
            reboot=None if reboot is None else bool(reboot),
            reboot_delay_minutes=reboot_delay_minutes,
            dry_run=dry_run,
        )
    except UpgraderError as exc:
        raise click.ClickException(str(exc)) from exc

    raise SystemExit(upgrader.run())


if __name__ == "__main__":
    main()
