"""
Operator commands that talk to a running server's HTTP API.
"""
import click
import requests

from ..config import DeslackSettings


def _api_url(api):
    if api:
        return api.rstrip('/')
    settings = DeslackSettings()
    return f"http://{settings.server.api_host}:{settings.server.api_port}"


def _request(method, url, **kwargs):
    try:
        response = requests.request(method, url, timeout=10, **kwargs)
    except requests.RequestException as e:
        raise click.ClickException(f"Could not reach the operator API: {e}")
    return response


api_option = click.option('--api', type=str, help='Operator API base URL')


@click.command()
@click.argument('address')
@api_option
def approve(address, api):
    """Approve the pending sign-up of ADDRESS."""
    response = _request('POST', f"{_api_url(api)}/sessions/{address}/approve")
    if response.status_code == 404:
        raise click.ClickException(f"Unknown address: {address}")
    response.raise_for_status()

    result = response.json()
    if result["approved"]:
        click.echo(f"Approved {address}")
    else:
        click.echo(f"Nothing to approve for {address} (state: {result['state']})")


@click.command()
@api_option
def sessions(api):
    """List the sessions known to the server."""
    response = _request('GET', f"{_api_url(api)}/sessions")
    response.raise_for_status()

    rows = response.json()
    if not rows:
        click.echo("No sessions")
        return
    for row in rows:
        click.echo(f"{row['address']}  {row['state']:<17} {row.get('email') or ''}")


@click.command('create-channel')
@click.argument('name')
@api_option
def create_channel(name, api):
    """Create the channel NAME."""
    response = _request('POST', f"{_api_url(api)}/channels", json={"name": name})
    if response.status_code == 409:
        raise click.ClickException(f"Channel already exists: {name}")
    response.raise_for_status()
    click.echo(f"Created #{name}")
