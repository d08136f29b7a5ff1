import click


@click.group()
def main() -> None:
    """Coding Worker - ephemeral coding-assistant job runner."""


@main.command()
@click.option("--host", default=None, help="Bind host (default: from WORKER_HOST or 0.0.0.0).")
@click.option("--port", default=None, type=int, help="Bind port (default: from WORKER_PORT or 5000).")
@click.option("--reload", is_flag=True, default=False, help="Enable auto-reload for development.")
def worker(host: str | None, port: int | None, reload: bool) -> None:
    """Start the worker HTTP server."""
    import uvicorn

    from coding_worker.worker.settings import WorkerSettings

    settings = WorkerSettings()

    uvicorn.run(
        "coding_worker.worker.app:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level="warning",  # uvicorn's own logging is intercepted by loguru
        # Leave room for the running job's upload and cleanup.
        timeout_graceful_shutdown=int(settings.remote_drain_timeout) + 60,
    )


# ---------------------------------------------------------------------------
# Durable session store
# ---------------------------------------------------------------------------


def _storage():
    from coding_worker.worker.app import create_session_storage
    from coding_worker.worker.log import setup_logging
    from coding_worker.worker.settings import WorkerSettings

    settings = WorkerSettings()
    setup_logging(settings.log_level, json=settings.log_json)
    return create_session_storage(settings)


@main.group()
def sessions() -> None:
    """Inspect and prune sessions in the durable store."""


@sessions.command("list")
def list_sessions() -> None:
    """List stored session ids."""
    import asyncio

    ids = asyncio.run(_storage().list_sessions())
    for session_id in ids:
        click.echo(session_id)
    if not ids:
        click.echo("No sessions stored.", err=True)


@sessions.command("delete")
@click.argument("session_id")
@click.confirmation_option(prompt="Delete this session from the durable store?")
def delete_session(session_id: str) -> None:
    """Delete one stored session."""
    import asyncio

    asyncio.run(_storage().delete(session_id))
    click.echo(f"Session {session_id} deleted.")


if __name__ == "__main__":
    main()
