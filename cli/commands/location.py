import click

from rbibli.sa.repositories import LocationRepository
from ..utils import library_session, echo_success, echo_empty


@click.group()
def location():
    """Rooms, bookshelves and shelves"""
    pass


@location.command(name='add')
@click.argument('name')
@click.option('--parent-id', default=None, help='Parent location (omit for a root)')
@click.option('--kind', default='room', type=click.Choice(['room', 'bookshelf', 'shelf']))
@click.option('--description', default=None)
@click.pass_context
def add_location(ctx, name: str, parent_id: str, kind: str, description: str):
    """Create a location called NAME"""
    with library_session(ctx) as session:
        repo = LocationRepository(session)
        created = repo.create_location(name, parent_id=parent_id, kind=kind, description=description)
        echo_success(f"Created {created.kind} {repo.full_path(created.id)} ({created.id})")


@location.command(name='list')
@click.pass_context
def list_locations(ctx):
    """Show the location tree with volume counts"""
    with library_session(ctx) as session:
        rows = LocationRepository(session).list_with_paths()
        if not rows:
            echo_empty('locations')
            return
        for loc, path, level, child_count, volume_count in rows:
            click.echo("  " * level + click.style(loc.name, fg='cyan') +
                       f"  [{loc.kind}] {volume_count} volume(s), {child_count} sub-location(s)  " +
                       click.style(loc.id, fg='bright_black'))


@location.command(name='move')
@click.argument('location_id')
@click.option('--parent-id', default=None, help='New parent (omit to make it a root)')
@click.pass_context
def move_location(ctx, location_id: str, parent_id: str):
    """Move a location under another one"""
    with library_session(ctx) as session:
        repo = LocationRepository(session)
        repo.move_location(location_id, parent_id)
        echo_success(f"Moved to {repo.full_path(location_id)}")


@location.command(name='delete')
@click.argument('location_id')
@click.option('--cascade/--no-cascade', default=False, help='Also delete all sub-locations')
@click.pass_context
def delete_location(ctx, location_id: str, cascade: bool):
    """Delete a location; its volumes keep existing without a location"""
    with library_session(ctx) as session:
        detached = LocationRepository(session).delete_location(location_id, cascade=cascade)
        echo_success(f"Deleted location, {detached} volume(s) detached")
