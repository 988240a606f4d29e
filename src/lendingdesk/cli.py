"""Command-line interface for lendingdesk.

Built with Typer for commands and Rich for beautiful output.
"""

import logging
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from sqlalchemy.exc import IntegrityError

from .config import get_config
from .db import get_db
from .db.schemas import Role, UserCreate
from .errors import LendingError, StorageError
from .lending import Actor, LendingCoordinator

# Create the main app
app = typer.Typer(
    name="lendingdesk",
    help="Lend books: requests, approvals, issues and returns.",
    no_args_is_help=True,
)

# Create sub-apps for command groups
users_app = typer.Typer(help="Manage the user directory.")
app.add_typer(users_app, name="users")
books_app = typer.Typer(help="Manage the book catalog.")
app.add_typer(books_app, name="books")
requests_app = typer.Typer(help="Submit and decide book requests.")
app.add_typer(requests_app, name="requests")
issues_app = typer.Typer(help="Issue, return and review loans.")
app.add_typer(issues_app, name="issues")

# Rich console for pretty output
console = Console()

AS_OPTION_HELP = "User ID or email of the person acting"


# ============================================================================
# Helper Functions
# ============================================================================


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[bold green]Success:[/bold green] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[dim]{message}[/dim]")


def get_coordinator() -> LendingCoordinator:
    """Build a coordinator over the configured database."""
    return LendingCoordinator(get_db(), get_config())


def resolve_actor(who: str) -> Actor:
    """Look up the acting user by ID or email and attach their role."""
    db = get_db()
    user = db.get_user(who) or db.get_user_by_email(who)
    if not user:
        print_error(f"Unknown user: {who}")
        raise typer.Exit(1)
    return Actor(user_id=user.id, role=Role(user.role))


def fail(error: Exception) -> None:
    """Report a lending or storage error and exit."""
    if isinstance(error, StorageError):
        print_error(f"Storage failure: {error}")
    else:
        print_error(str(error))
    raise typer.Exit(1)


def status_badge(status: str) -> str:
    """Colour a request status for display."""
    colours = {"pending": "yellow", "approved": "green", "rejected": "red"}
    return f"[{colours.get(status, 'white')}]{status}[/{colours.get(status, 'white')}]"


def format_issue_status(issue) -> str:
    """Describe a loan's state for display."""
    if issue.is_returned:
        return "[dim]returned[/dim]"
    if issue.is_overdue:
        return f"[bold red]OVERDUE ({issue.days_overdue}d)[/bold red]"
    return f"[green]open ({issue.days_until_due}d left)[/green]"


@app.callback()
def main_callback() -> None:
    """Configure logging from the environment."""
    config = get_config()
    logging.basicConfig(
        level=config.log_level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


# ============================================================================
# Setup Commands
# ============================================================================


@app.command()
def init() -> None:
    """Create the database tables."""
    config = get_config()
    errors = config.validate()
    if errors:
        for error in errors:
            print_error(error)
        raise typer.Exit(1)

    get_db()
    print_success(f"Database ready at {config.db_path}")


@app.command()
def seed(
    users: bool = typer.Option(True, "--users/--no-users", help="Also add sample users"),
) -> None:
    """Load a sample catalog (and sample users)."""
    from .catalog import seed_catalog, seed_users

    db = get_db()
    added = seed_catalog(db)
    print_success(f"Added {added} book(s)")
    if users:
        added_users = seed_users(db)
        print_success(f"Added {added_users} user(s)")


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__

    console.print(f"lendingdesk version {__version__}")


# ============================================================================
# User Commands
# ============================================================================


@users_app.command("add")
def users_add(
    name: str = typer.Argument(..., help="Full name"),
    email: str = typer.Argument(..., help="Email address"),
    admin: bool = typer.Option(False, "--admin", help="Grant the administrator role"),
) -> None:
    """Register a user."""
    from pydantic import ValidationError as PydanticValidationError

    try:
        data = UserCreate(name=name, email=email, role=Role.ADMIN if admin else Role.PATRON)
    except PydanticValidationError as e:
        print_error(str(e))
        raise typer.Exit(1)

    try:
        user = get_db().create_user(data)
    except IntegrityError:
        print_error(f"Email already registered: {data.email}")
        raise typer.Exit(1)

    print_success(f"Registered {user.name} ({user.role})")
    console.print(f"  ID: {user.id}")


@users_app.command("list")
def users_list() -> None:
    """List registered users."""
    users = get_db().list_users()
    if not users:
        print_info("No users registered")
        return

    table = Table(title="Users", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Email")
    table.add_column("Role")

    for user in users:
        table.add_row(user.id, user.name, user.email, user.role)

    console.print(table)


# ============================================================================
# Book Commands
# ============================================================================


@books_app.command("add")
def books_add(
    title: str = typer.Argument(..., help="Book title"),
    author: str = typer.Argument(..., help="Author"),
    description: Optional[str] = typer.Option(None, "--description", "-d", help="Description"),
    quantity: int = typer.Option(1, "--quantity", "-q", help="Copies available"),
    acting_as: str = typer.Option(..., "--as", help=AS_OPTION_HELP),
) -> None:
    """Add a book to the catalog."""
    actor = resolve_actor(acting_as)
    try:
        book = get_coordinator().add_book(actor, title, author, description, quantity)
    except (LendingError, StorageError) as e:
        fail(e)

    print_success(f"Added: {book.title} by {book.author} ({book.quantity} copies)")
    console.print(f"  ID: {book.id}")


@books_app.command("list")
def books_list(
    available: bool = typer.Option(False, "--available", "-a", help="Only books with copies left"),
) -> None:
    """List the catalog."""
    try:
        books = get_coordinator().list_books()
    except StorageError as e:
        fail(e)

    if available:
        books = [b for b in books if b.is_available]

    if not books:
        print_info("No books found")
        return

    table = Table(title="Catalog", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Title", style="cyan", max_width=40)
    table.add_column("Author", style="green", max_width=25)
    table.add_column("Available", justify="right")

    for book in books:
        qty = f"[red]{book.quantity}[/red]" if book.quantity == 0 else str(book.quantity)
        table.add_row(str(book.id), book.title, book.author, qty)

    console.print(table)


@books_app.command("update")
def books_update(
    book_id: str = typer.Argument(..., help="Book ID"),
    title: Optional[str] = typer.Option(None, "--title", "-t", help="New title"),
    author: Optional[str] = typer.Option(None, "--author", "-a", help="New author"),
    description: Optional[str] = typer.Option(None, "--description", "-d", help="New description"),
    quantity: Optional[int] = typer.Option(None, "--quantity", "-q", help="New available count"),
    acting_as: str = typer.Option(..., "--as", help=AS_OPTION_HELP),
) -> None:
    """Update a catalog entry."""
    actor = resolve_actor(acting_as)
    fields = {
        k: v
        for k, v in {
            "title": title,
            "author": author,
            "description": description,
            "quantity": quantity,
        }.items()
        if v is not None
    }
    if not fields:
        print_error("Nothing to update")
        raise typer.Exit(1)

    try:
        book = get_coordinator().update_book(actor, book_id, fields)
    except (LendingError, StorageError) as e:
        fail(e)

    print_success(f"Updated: {book.title}")


@books_app.command("delete")
def books_delete(
    book_id: str = typer.Argument(..., help="Book ID"),
    acting_as: str = typer.Option(..., "--as", help=AS_OPTION_HELP),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Remove a book from the catalog."""
    actor = resolve_actor(acting_as)
    if not yes:
        typer.confirm(f"Delete book {book_id}?", abort=True)

    try:
        get_coordinator().delete_book(actor, book_id)
    except (LendingError, StorageError) as e:
        fail(e)

    print_success("Book deleted")


# ============================================================================
# Request Commands
# ============================================================================


@requests_app.command("submit")
def requests_submit(
    book_id: str = typer.Argument(..., help="Book ID to request"),
    acting_as: str = typer.Option(..., "--as", help=AS_OPTION_HELP),
) -> None:
    """Request to borrow a book."""
    actor = resolve_actor(acting_as)
    try:
        request = get_coordinator().submit_request(actor, book_id)
    except (LendingError, StorageError) as e:
        fail(e)

    print_success(f"Request submitted for {request.book.title if request.book else book_id}")
    console.print(f"  Request ID: {request.id}")


@requests_app.command("approve")
def requests_approve(
    request_id: str = typer.Argument(..., help="Request ID"),
    acting_as: str = typer.Option(..., "--as", help=AS_OPTION_HELP),
) -> None:
    """Approve a pending request and issue the book."""
    actor = resolve_actor(acting_as)
    try:
        result = get_coordinator().approve_request(actor, request_id)
    except (LendingError, StorageError) as e:
        fail(e)

    print_success("Request approved and book issued")
    console.print(f"  Due: {result.issue.due_date.date().isoformat()}")


@requests_app.command("reject")
def requests_reject(
    request_id: str = typer.Argument(..., help="Request ID"),
    message: Optional[str] = typer.Option(None, "--message", "-m", help="Reason shown to the patron"),
    acting_as: str = typer.Option(..., "--as", help=AS_OPTION_HELP),
) -> None:
    """Reject a pending request."""
    actor = resolve_actor(acting_as)
    try:
        get_coordinator().reject_request(actor, request_id, message)
    except (LendingError, StorageError) as e:
        fail(e)

    print_success("Request rejected")


@requests_app.command("list")
def requests_list(
    acting_as: str = typer.Option(..., "--as", help=AS_OPTION_HELP),
    all_users: bool = typer.Option(False, "--all", help="Every user's requests (admin)"),
    pending: bool = typer.Option(False, "--pending", "-p", help="Only pending requests"),
) -> None:
    """List book requests."""
    actor = resolve_actor(acting_as)
    coordinator = get_coordinator()
    try:
        if all_users:
            requests = coordinator.list_all_requests(actor)
        else:
            requests = coordinator.list_user_requests(actor)
    except (LendingError, StorageError) as e:
        fail(e)

    if pending:
        requests = [r for r in requests if r.status.value == "pending"]

    if not requests:
        print_info("No requests found")
        return

    table = Table(title="Requests", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Book", style="cyan", max_width=30)
    if all_users:
        table.add_column("Requester")
    table.add_column("Requested")
    table.add_column("Status")
    table.add_column("Message", max_width=30)

    for request in requests:
        row = [str(request.id), request.book.title if request.book else "Unknown"]
        if all_users:
            row.append(
                f"{request.requester.name} <{request.requester.email}>"
                if request.requester
                else request.user_id
            )
        row.extend(
            [
                request.request_date.date().isoformat(),
                status_badge(request.status.value),
                request.response_message or "-",
            ]
        )
        table.add_row(*row)

    console.print(table)


# ============================================================================
# Issue Commands
# ============================================================================


@issues_app.command("issue")
def issues_issue(
    book_id: str = typer.Argument(..., help="Book ID to issue"),
    acting_as: str = typer.Option(..., "--as", help=AS_OPTION_HELP),
    to_user: Optional[str] = typer.Option(None, "--to", help="Borrower ID (admin, default: yourself)"),
) -> None:
    """Issue a book directly, without a request."""
    actor = resolve_actor(acting_as)
    user_id = to_user or actor.user_id
    try:
        issue = get_coordinator().issue_book(actor, user_id, book_id)
    except (LendingError, StorageError) as e:
        fail(e)

    print_success(f"Issued {issue.book.title if issue.book else book_id}")
    console.print(f"  Due: {issue.due_date.date().isoformat()}")


@issues_app.command("return")
def issues_return(
    book_id: str = typer.Argument(..., help="Book ID to return"),
    acting_as: str = typer.Option(..., "--as", help=AS_OPTION_HELP),
    for_user: Optional[str] = typer.Option(None, "--for", help="Borrower ID (admin, default: yourself)"),
) -> None:
    """Return a borrowed book."""
    actor = resolve_actor(acting_as)
    user_id = for_user or actor.user_id
    try:
        issue = get_coordinator().return_book(actor, user_id, book_id)
    except (LendingError, StorageError) as e:
        fail(e)

    print_success(f"Returned {issue.book.title if issue.book else book_id}")


@issues_app.command("list")
def issues_list(
    acting_as: str = typer.Option(..., "--as", help=AS_OPTION_HELP),
    all_users: bool = typer.Option(False, "--all", help="Every user's loans (admin)"),
    open_only: bool = typer.Option(False, "--open", "-o", help="Only loans not yet returned"),
) -> None:
    """List loans."""
    actor = resolve_actor(acting_as)
    coordinator = get_coordinator()
    try:
        if all_users:
            issues = coordinator.list_all_issues(actor)
        else:
            issues = coordinator.list_user_issues(actor)
    except (LendingError, StorageError) as e:
        fail(e)

    if open_only:
        issues = [i for i in issues if not i.is_returned]

    if not issues:
        print_info("No loans found")
        return

    table = Table(title="Loans", show_header=True, header_style="bold magenta")
    table.add_column("Book", style="cyan", max_width=30)
    if all_users:
        table.add_column("Borrower")
    table.add_column("Issued")
    table.add_column("Due")
    table.add_column("Status")

    for issue in issues:
        row = [issue.book.title if issue.book else "Unknown"]
        if all_users:
            row.append(issue.requester.name if issue.requester else issue.user_id)
        row.extend(
            [
                issue.issue_date.date().isoformat(),
                issue.due_date.date().isoformat(),
                format_issue_status(issue),
            ]
        )
        table.add_row(*row)

    console.print(table)


@issues_app.command("overdue")
def issues_overdue(
    acting_as: str = typer.Option(..., "--as", help=AS_OPTION_HELP),
) -> None:
    """Show overdue loans."""
    actor = resolve_actor(acting_as)
    try:
        report = get_coordinator().list_overdue_issues(actor)
    except (LendingError, StorageError) as e:
        fail(e)

    if not report.issues:
        print_success("No overdue loans!")
        return

    console.print(Panel(
        f"[bold red]Overdue Loans: {report.total_overdue}[/bold red]\n"
        f"Oldest: {report.oldest_overdue_days} days overdue",
        style="red",
    ))

    table = Table(show_header=True, header_style="bold red")
    table.add_column("Book", style="cyan")
    table.add_column("Borrower")
    table.add_column("Due Date")
    table.add_column("Days Overdue", justify="right")

    for issue in report.issues:
        table.add_row(
            issue.book.title if issue.book else "Unknown",
            issue.requester.email if issue.requester else issue.user_id,
            issue.due_date.date().isoformat(),
            f"[bold red]{issue.days_overdue}[/bold red]",
        )

    console.print(table)


# ============================================================================
# Main Entry Point
# ============================================================================


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
