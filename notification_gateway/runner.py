"""
CLI entrypoint for the notification gateway.
"""
import httpx
import typer

from notification_gateway.shared.config import settings
from notification_gateway.shared.log_setup import configure_logging

app = typer.Typer(help="Notification Gateway CLI Manager")


def _base_url(port: int) -> str:
    return f"http://127.0.0.1:{port}"


@app.command()
def gateway():
    """Start the notification gateway using Uvicorn."""
    import uvicorn
    configure_logging(settings.LOG_LEVEL)
    typer.echo(f"Starting gateway on port {settings.PORT}...")
    uvicorn.run(
        "notification_gateway.server.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


@app.command()
def users():
    """Start the user service using Uvicorn."""
    import uvicorn
    configure_logging(settings.LOG_LEVEL)
    typer.echo(f"Starting user service on port {settings.USER_SERVICE_PORT}...")
    uvicorn.run(
        "notification_gateway.user_service.main:app",
        host=settings.HOST,
        port=settings.USER_SERVICE_PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


@app.command()
def health(port: int = typer.Option(settings.PORT, help="Gateway port")):
    """Query the gateway's liveness and readiness probes."""
    base_url = _base_url(port)
    for path in ("/health", "/ready"):
        resp = httpx.get(f"{base_url}{path}")
        typer.echo(f"{path} {resp.status_code} {resp.json()}")


def _parse_vars(pairs: list[str]) -> dict[str, str]:
    variables = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"expected KEY=VALUE, got {pair!r}", param_hint="--var")
        variables[key] = value
    return variables


@app.command()
def send(
    notification_type: str = typer.Option("email", "--type", help="Notification type: email or push"),
    user_id: str = typer.Option(..., help="Recipient user id"),
    template: str = typer.Option(..., help="Template code, e.g. WELCOME"),
    var: list[str] = typer.Option([], help="Template variable as KEY=VALUE (repeatable)"),
    port: int = typer.Option(settings.PORT, help="Gateway port"),
):
    """Submit one notification request to a running gateway."""
    body = {
        "notification_type": notification_type,
        "user_id": user_id,
        "template_code": template,
        "variables": _parse_vars(var),
    }
    resp = httpx.post(f"{_base_url(port)}/api/v1/notifications", json=body)
    typer.echo(f"{resp.status_code} {resp.json()}")
    if resp.status_code >= 400:
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
