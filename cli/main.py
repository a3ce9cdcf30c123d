# cli/main.py
import logging
import click

from rbibli.sa.database import Database
from .commands.catalog import catalog
from .commands.location import location
from .commands.borrower import borrower
from .commands.loan import loan
from .utils import echo_success


@click.group()
@click.option('--db-url', envvar='DATABASE_URL', default=None,
              help='SQLAlchemy database URL (default: sqlite:///rbibli.db)')
@click.option('--verbose/--no-verbose', default=False, help='Show engine log messages')
@click.pass_context
def cli(ctx: click.Context, db_url: str, verbose: bool):
    """rbibli personal library CLI"""
    ctx.ensure_object(dict)
    ctx.obj['db_url'] = db_url
    logging.basicConfig(level=logging.INFO if verbose else logging.WARNING,
                        format='%(levelname)s %(name)s: %(message)s')


@cli.command(name='init-db')
@click.pass_context
def init_db(ctx: click.Context):
    """Create all tables"""
    db = Database(ctx.obj['db_url'])
    db.init_db()
    ctx.obj['database'] = db
    echo_success("Database initialized")


cli.add_command(catalog)
cli.add_command(location)
cli.add_command(borrower)
cli.add_command(loan)


def main():
    """Entry point for the CLI"""
    cli()


if __name__ == '__main__':
    main()
