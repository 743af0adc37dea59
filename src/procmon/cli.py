"""CLI commands for procmon."""

import click

from procmon.config import ConfigError, validate_interval, validate_pid, validate_threshold

# -w without a port means "use [web] port from the config file"
WEB_PORT_FROM_CONFIG = -1


def _load_config():
    from procmon.config import Config

    try:
        return Config.load()
    except ConfigError as e:
        raise click.UsageError(str(e)) from e


def _interval_callback(
    ctx: click.Context, param: click.Parameter, value: str | None
) -> int | None:
    if value is None:
        return None
    try:
        return validate_interval(value)
    except ConfigError as e:
        raise click.BadParameter(str(e), ctx=ctx, param=param) from e


def _threshold_callback(
    ctx: click.Context, param: click.Parameter, value: str | None
) -> float | None:
    try:
        return validate_threshold(value, f"--{param.name.replace('_', '-')}")
    except ConfigError as e:
        raise click.BadParameter(str(e), ctx=ctx, param=param) from e


def _configured_threshold(value: float) -> float | None:
    """Config file thresholds use 0 for disabled."""
    return value if value > 0 else None


@click.group()
@click.version_option()
def main() -> None:
    """Watch processes by the script they run, not just the executable name."""
    pass


@main.command()
@click.option("--process", "-p", "process_type", help="Process type (python, node, java, ...)")
@click.option("--filter", "-f", "filter_pattern", help="Only commands containing this text")
@click.option(
    "--interval",
    "-i",
    callback=_interval_callback,
    help="Refresh interval in ms (min 100, default from config)",
)
@click.option("--export", "-e", "export_on_exit", is_flag=True, help="Export JSON on exit")
@click.option(
    "--web",
    "-w",
    "web_port",
    type=int,
    is_flag=False,
    flag_value=WEB_PORT_FROM_CONFIG,
    default=None,
    help="Serve the web dashboard (optionally on PORT)",
)
@click.option("--tree", "tree_view", is_flag=True, help="Show the parent/child tree")
@click.option("--alert-cpu", callback=_threshold_callback, help="Alert when CPU % exceeds this")
@click.option(
    "--alert-memory", callback=_threshold_callback, help="Alert when memory MB exceeds this"
)
@click.option("--docker", "docker_only", is_flag=True, help="Only processes of running containers")
def watch(
    process_type: str | None,
    filter_pattern: str | None,
    interval: int | None,
    export_on_exit: bool,
    web_port: int | None,
    tree_view: bool,
    alert_cpu: float | None,
    alert_memory: float | None,
    docker_only: bool,
) -> None:
    """Monitor processes of one type until Ctrl+C."""
    import asyncio

    from procmon import logging as console_log
    from procmon.alerts import AlertConfig
    from procmon.collector import PROCESS_PRESETS
    from procmon.monitor import Monitor, MonitorOptions

    config = _load_config()

    if process_type is None:
        click.echo(f"Presets: {', '.join(PROCESS_PRESETS)} (or any executable name)")
        process_type = click.prompt(
            "Process type", default=config.monitor.default_process_type, type=str
        )
        if filter_pattern is None:
            filter_pattern = click.prompt(
                "Filter by command (optional)", default="", show_default=False, type=str
            )
    filter_pattern = filter_pattern or None
    # The docker preset matches every process; container PIDs narrow it down
    docker_only = docker_only or process_type.lower() == "docker"

    if web_port == WEB_PORT_FROM_CONFIG:
        web_port = config.web.port
    if web_port is not None and not 0 <= web_port <= 65535:
        raise click.BadParameter("Port must be between 0 and 65535", param_hint="'--web'")

    if docker_only:
        from procmon.docker import DockerInspector, is_docker_available

        if not is_docker_available():
            console_log.docker_unavailable()
            raise SystemExit(1)
        console_log.docker_status(len(DockerInspector().get_containers()))

    alerts = AlertConfig(
        cpu_threshold=alert_cpu
        if alert_cpu is not None
        else _configured_threshold(config.alerts.cpu_percent),
        memory_threshold_mb=alert_memory
        if alert_memory is not None
        else _configured_threshold(config.alerts.memory_mb),
    )

    options = MonitorOptions(
        process_type=process_type,
        filter_pattern=filter_pattern,
        interval_ms=interval or config.monitor.interval_ms,
        export_on_exit=export_on_exit,
        web_port=web_port,
        tree_view=tree_view,
        alerts=alerts,
        docker_only=docker_only,
    )

    console_log.configure(config, source="watch")
    console_log.monitor_starting()
    asyncio.run(Monitor(options, config).run())


@main.command()
@click.argument("pid")
@click.option(
    "--interval",
    "-i",
    callback=_interval_callback,
    help="Sample interval in ms (min 100, default from config)",
)
@click.option("--export", "-e", "export_on_exit", is_flag=True, help="Export CSV on exit")
def trace(pid: str, interval: int | None, export_on_exit: bool) -> None:
    """Follow one PID with full history and print graphs on exit."""
    import asyncio

    from procmon import logging as console_log
    from procmon.collector import find_process
    from procmon.monitor import TraceOptions, Tracer

    try:
        target_pid = validate_pid(pid)
    except ConfigError as e:
        raise click.BadParameter(str(e), param_hint="'PID'") from e

    config = _load_config()

    target = find_process(target_pid)
    if target is None:
        console_log.error(f"Process with PID {target_pid} not found")
        raise SystemExit(1)

    options = TraceOptions(
        pid=target_pid,
        interval_ms=interval or config.monitor.interval_ms,
        export_on_exit=export_on_exit,
    )

    console_log.configure(config, source="trace")
    console_log.trace_started(target.pid, target.name)
    asyncio.run(Tracer(options, target, config).run())


@main.group()
def config() -> None:
    """Manage configuration."""
    pass


@config.command("show")
def config_show() -> None:
    """Display current configuration."""
    cfg = _load_config()

    click.echo(f"Config file: {cfg.config_path}")
    click.echo(f"Exists: {cfg.config_path.exists()}")
    click.echo()
    click.echo("[monitor]")
    click.echo(f"  interval_ms = {cfg.monitor.interval_ms}")
    click.echo(f"  default_process_type = {cfg.monitor.default_process_type}")
    click.echo()
    click.echo("[history]")
    click.echo(f"  window_size = {cfg.history.window_size}")
    click.echo()
    click.echo("[alerts]")
    click.echo(f"  cpu_percent = {cfg.alerts.cpu_percent}")
    click.echo(f"  memory_mb = {cfg.alerts.memory_mb}")
    click.echo(f"  cooldown_ms = {cfg.alerts.cooldown_ms}")
    click.echo(f"  bell = {cfg.alerts.bell}")
    click.echo()
    click.echo("[export]")
    click.echo(f"  directory = {cfg.export.directory}")
    click.echo()
    click.echo("[web]")
    click.echo(f"  host = {cfg.web.host}")
    click.echo(f"  port = {cfg.web.port}")
    click.echo(f"  refresh_seconds = {cfg.web.refresh_seconds}")


@config.command("edit")
def config_edit() -> None:
    """Open config file in editor."""
    import os
    import subprocess

    from procmon import logging as console_log

    cfg = _load_config()

    # Create config if it doesn't exist
    if not cfg.config_path.exists():
        cfg.save()
        console_log.config_created(str(cfg.config_path))

    editor = os.environ.get("EDITOR", "nano")
    subprocess.run([editor, str(cfg.config_path)])


@config.command("reset")
@click.confirmation_option(prompt="Reset config to defaults?")
def config_reset() -> None:
    """Reset configuration to defaults."""
    from procmon.config import Config

    cfg = Config()
    cfg.save()
    click.echo(f"Config reset to defaults at {cfg.config_path}")
