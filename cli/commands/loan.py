import click

from rbibli.sa.repositories import LoanRepository
from ..utils import library_session, echo_success, echo_empty, format_date


def _print_loan(repo: LoanRepository, loan) -> None:
    due = format_date(loan.due_date)
    due = click.style(due, fg='red') if repo.is_overdue(loan) else due
    click.echo(click.style(loan.volume.barcode, fg='cyan') +
               f"  {loan.volume.title.name}  -> {loan.borrower.name}  due {due}  " +
               click.style(loan.id, fg='bright_black'))


@click.group()
def loan():
    """Checkout, renew and return volumes"""
    pass


@loan.command(name='checkout')
@click.argument('barcode')
@click.argument('borrower_id')
@click.pass_context
def checkout(ctx, barcode: str, borrower_id: str):
    """Lend the volume with BARCODE to BORROWER_ID"""
    with library_session(ctx) as session:
        created = LoanRepository(session).checkout_by_barcode(barcode, borrower_id)
        echo_success(f"Checked out {barcode}, due {format_date(created.due_date)} ({created.id})")


@loan.command(name='renew')
@click.argument('loan_id')
@click.pass_context
def renew(ctx, loan_id: str):
    with library_session(ctx) as session:
        renewed = LoanRepository(session).renew(loan_id)
        echo_success(f"Renewed, now due {format_date(renewed.due_date)} "
                     f"(renewal {renewed.extension_count})")


@loan.command(name='return')
@click.argument('loan_id')
@click.pass_context
def return_loan(ctx, loan_id: str):
    with library_session(ctx) as session:
        LoanRepository(session).return_loan(loan_id)
        echo_success("Returned")


@loan.command(name='active')
@click.option('--borrower-id', default=None)
@click.pass_context
def list_active(ctx, borrower_id: str):
    """List loans that have not been returned, newest first"""
    with library_session(ctx) as session:
        repo = LoanRepository(session)
        loans = repo.list_active_loans(borrower_id=borrower_id)
        if not loans:
            echo_empty('active loans')
            return
        for item in loans:
            _print_loan(repo, item)


@loan.command(name='overdue')
@click.option('--borrower-id', default=None)
@click.pass_context
def list_overdue(ctx, borrower_id: str):
    """List overdue loans, most overdue first"""
    with library_session(ctx) as session:
        repo = LoanRepository(session)
        loans = repo.list_overdue_loans(borrower_id=borrower_id)
        if not loans:
            echo_empty('overdue loans')
            return
        for item in loans:
            _print_loan(repo, item)
