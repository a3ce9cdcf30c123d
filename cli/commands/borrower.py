import click

from rbibli.sa.repositories import BorrowerGroupRepository, BorrowerRepository
from ..utils import library_session, echo_success, echo_empty


@click.group()
def borrower():
    """Borrowers and borrower groups"""
    pass


@borrower.command(name='add-group')
@click.argument('name')
@click.option('--max-loan-days', required=True, type=int)
@click.option('--max-renewals', required=True, type=int)
@click.option('--description', default=None)
@click.pass_context
def add_group(ctx, name: str, max_loan_days: int, max_renewals: int, description: str):
    """Create a borrower group called NAME with its loan policy"""
    with library_session(ctx) as session:
        group = BorrowerGroupRepository(session).create_group(
            name, max_loan_days=max_loan_days, max_renewals=max_renewals, description=description
        )
        echo_success(f"Created group {group.name} ({group.id})")


@borrower.command(name='groups')
@click.pass_context
def list_groups(ctx):
    """List borrower groups"""
    with library_session(ctx) as session:
        rows = BorrowerGroupRepository(session).list_groups()
        if not rows:
            echo_empty('groups')
            return
        for group, members in rows:
            click.echo(click.style(group.name, fg='cyan') +
                       f"  {group.max_loan_days} day(s), {group.max_renewals} renewal(s), {members} member(s)  " +
                       click.style(group.id, fg='bright_black'))


@borrower.command(name='delete-group')
@click.argument('group_id')
@click.option('--detach/--no-detach', default=False, help='Remove members from the group instead of refusing')
@click.pass_context
def delete_group(ctx, group_id: str, detach: bool):
    with library_session(ctx) as session:
        detached = BorrowerGroupRepository(session).delete_group(group_id, detach_borrowers=detach)
        echo_success(f"Deleted group, {detached} borrower(s) detached")


@borrower.command(name='add')
@click.argument('name')
@click.option('--email', default=None)
@click.option('--phone', default=None)
@click.option('--group-id', default=None)
@click.pass_context
def add_borrower(ctx, name: str, email: str, phone: str, group_id: str):
    """Register a borrower called NAME"""
    with library_session(ctx) as session:
        created = BorrowerRepository(session).create_borrower(name, email=email, phone=phone, group_id=group_id)
        echo_success(f"Created borrower {created.name} ({created.id})")


@borrower.command(name='list')
@click.option('--group-id', default=None)
@click.pass_context
def list_borrowers(ctx, group_id: str):
    """List borrowers with the number of loans they hold"""
    with library_session(ctx) as session:
        rows = BorrowerRepository(session).list_borrowers(group_id=group_id)
        if not rows:
            echo_empty('borrowers')
            return
        for person, active in rows:
            click.echo(click.style(person.name, fg='cyan') + f"  {active} active loan(s)  " +
                       click.style(person.id, fg='bright_black'))


@borrower.command(name='delete')
@click.argument('borrower_id')
@click.pass_context
def delete_borrower(ctx, borrower_id: str):
    """Delete a borrower and their returned loans"""
    with library_session(ctx) as session:
        removed = BorrowerRepository(session).delete_borrower(borrower_id)
        echo_success(f"Deleted borrower and {removed} past loan(s)")
