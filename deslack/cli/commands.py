"""deslack CLI Commands"""
import click
from .node import server, client
from .admin import approve, sessions, create_channel

@click.group()
def cli():
    """deslack Command Line Interface"""
    pass

# Register commands
cli.add_command(server)
cli.add_command(client)
cli.add_command(approve)
cli.add_command(sessions)
cli.add_command(create_channel)
