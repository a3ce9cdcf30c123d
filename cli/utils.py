import click
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional
from sqlalchemy.orm import Session

from rbibli.errors import LibraryError
from rbibli.sa.database import Database


def get_database(ctx: click.Context) -> Database:
    """Database for the --db-url given to the root command, created once per invocation"""
    obj = ctx.ensure_object(dict)
    if 'database' not in obj:
        obj['database'] = Database(obj.get('db_url'))
    return obj['database']


@contextmanager
def library_session(ctx: click.Context) -> Iterator[Session]:
    """Open a session and turn library errors into click errors.

    The repositories commit their own work, so the session is only closed here.
    """
    session = get_database(ctx).get_session()
    try:
        yield session
    except LibraryError as e:
        session.rollback()
        raise click.ClickException(f"[{e.code}] {e}")
    finally:
        session.close()


def echo_success(message: str) -> None:
    click.echo(click.style(message, fg='green'))


def echo_field(label: str, value) -> None:
    """Print a "label: value" line, showing a dash for missing values"""
    shown = '-' if value is None or value == '' else str(value)
    click.echo(click.style(f"{label}: ", fg='blue') + click.style(shown, fg='cyan'))


def echo_empty(item_type: str) -> None:
    click.echo(click.style(f"No {item_type} found", fg='yellow'))


def format_date(value: Optional[datetime]) -> str:
    return value.strftime('%Y-%m-%d %H:%M') if value else '-'
