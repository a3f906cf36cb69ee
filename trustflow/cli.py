"""Command line interface for operating trustflow workflows."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Optional

import typer

from trustflow import (
    AccessGate,
    GiftCodeService,
    Session,
    WorkflowEngine,
    default_implementations,
    default_registry,
    get_repository,
    load_config,
)
from trustflow.config import AutosaveConfig
from trustflow.constants import DEFAULT_WORKFLOW_ID, ORDER_STATUS_PAID
from trustflow.contracts import ViewKind
from trustflow.exceptions import TrustflowError, WorkflowNotFoundError
from trustflow.persistence import Order

app = typer.Typer(help="CLI for trustflow workflows")

# Command groups
workflow_app = typer.Typer(help="Inspect configured workflows")
progress_app = typer.Typer(help="Inspect and reset user progress")
access_app = typer.Typer(help="Check workflow entitlements")
order_app = typer.Typer(help="Record orders")
giftcode_app = typer.Typer(help="Create, validate and redeem gift codes")

app.add_typer(workflow_app, name="workflow")
app.add_typer(progress_app, name="progress")
app.add_typer(access_app, name="access")
app.add_typer(order_app, name="order")
app.add_typer(giftcode_app, name="giftcode")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Override the configured log level"
    ),
) -> None:
    """Trustflow CLI entry point."""
    config = load_config()
    logging.basicConfig(
        level=(log_level or config.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _registry():
    return default_registry(load_config().workflows)


@workflow_app.command("list")
def workflow_list() -> None:
    """
    List configured workflows.

    Example:
        trustflow workflow list
        # Output: trust-bootcamp    Boot Camp documents    9 steps
    """
    workflows = _registry().list_workflows()
    if not workflows:
        typer.echo("No workflows configured")
        return
    for wf in workflows:
        typer.echo(f"{wf.id}\t{wf.title}\t{len(wf.steps)} steps")


@workflow_app.command("steps")
def workflow_steps(workflow_id: str = typer.Argument(DEFAULT_WORKFLOW_ID)) -> None:
    """
    Show the ordered steps of a workflow.

    Steps without a registered implementation are flagged; users reach a
    placeholder for them and may skip ahead.
    """
    try:
        steps = _registry().resolve_steps(workflow_id)
    except WorkflowNotFoundError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)

    implementations = default_implementations(
        AccessGate(get_repository()), Session(), workflow_id
    )
    for position, step in enumerate(steps, start=1):
        marker = "" if step.component_name in implementations else " (not implemented)"
        typer.echo(f"{position}. {step.id} - {step.display_name}{marker}")


@progress_app.command("list")
def progress_list() -> None:
    """List every stored progress record."""
    repo = get_repository()
    records = asyncio.run(repo.list_progress())
    if not records:
        typer.echo("No progress found")
        return
    for record in records:
        state = "COMPLETE" if record.is_complete else f"step {record.current_step}"
        typer.echo(f"{record.user_id}\t{record.workflow_id}\t{state}")


@progress_app.command("show")
def progress_show(
    user_id: str, workflow_id: str = typer.Argument(DEFAULT_WORKFLOW_ID)
) -> None:
    """
    Show one user's progress through a workflow.

    Example:
        trustflow progress show user-123 trust-bootcamp
        # Output: Progress for user-123 in trust-bootcamp: 2/9 steps (22.2%)
        #         [x] 1. Secure Payment
        #         [x] 2. NDA Agreement
        #         [>] 3. Identity Verification
    """
    config = load_config()
    engine = WorkflowEngine(
        workflow_id,
        Session(user_id=user_id),
        default_registry(config.workflows),
        get_repository(),
        implementations=default_implementations(),
        config=config.engine,
        autosave=AutosaveConfig(enabled=False),
        timeout=config.store.timeout_seconds,
    )
    view = asyncio.run(engine.load())
    if view.kind in (ViewKind.NOT_FOUND, ViewKind.ERROR):
        typer.secho(view.message or view.kind.value, fg=typer.colors.RED)
        raise typer.Exit(code=1)

    summary = engine.summary()
    typer.echo(
        f"Progress for {user_id} in {workflow_id}: "
        f"{summary.completed_count}/{summary.total_steps} steps ({summary.percent_complete}%)"
    )
    for status in summary.steps:
        mark = "x" if status.completed else (">" if status.current else " ")
        typer.echo(f"[{mark}] {status.position}. {status.display_name}")
    if summary.is_complete:
        typer.echo("Workflow complete")


@progress_app.command("reset")
def progress_reset(
    user_id: str,
    workflow_id: str = typer.Argument(DEFAULT_WORKFLOW_ID),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete a user's progress and saved step data for a workflow."""
    if not yes:
        typer.confirm(f"Reset progress of {user_id} in {workflow_id}?", abort=True)
    repo = get_repository()
    asyncio.run(repo.delete_progress(user_id, workflow_id))
    typer.echo(f"Progress reset for {user_id} in {workflow_id}")


@access_app.command("check")
def access_check(
    user_id: str, workflow_id: str = typer.Argument(DEFAULT_WORKFLOW_ID)
) -> None:
    """Report whether a user may enter a workflow and why."""
    config = load_config()
    gate = AccessGate(get_repository(), timeout=config.store.timeout_seconds)
    status = asyncio.run(gate.check_access(user_id, workflow_id))
    if status.error:
        typer.secho(f"Access check failed: {status.error}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"{status.status.value}\t{status.method.value}")
    if not status.has_access:
        raise typer.Exit(code=2)


@order_app.command("add")
def order_add(
    user_id: str,
    workflow_id: str = typer.Argument(DEFAULT_WORKFLOW_ID),
    amount: float = typer.Option(0.0, help="Amount charged"),
    currency: str = typer.Option("usd", help="ISO currency code"),
    status: str = typer.Option(ORDER_STATUS_PAID, help="Order status"),
) -> None:
    """Record an order, e.g. one confirmed by the payment provider."""
    order = Order(
        user_id=user_id,
        workflow_id=workflow_id,
        amount=amount,
        currency=currency,
        status=status,
    )
    asyncio.run(get_repository().add_order(order))
    typer.echo(f"Order {order.id} recorded ({order.status})")


@giftcode_app.command("create")
def giftcode_create(
    code: str,
    workflow_id: str = typer.Argument(DEFAULT_WORKFLOW_ID),
    created_by: Optional[str] = typer.Option(None, help="Issuing admin user id"),
    expires_at: Optional[datetime] = typer.Option(None, help="Expiry timestamp"),
) -> None:
    """Create a single-use gift code for a workflow."""
    service = GiftCodeService(get_repository())
    try:
        gift = asyncio.run(service.create(code, workflow_id, created_by, expires_at))
    except TrustflowError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Gift code {gift.code} created ({gift.id})")


@giftcode_app.command("validate")
def giftcode_validate(
    code: str, workflow_id: str = typer.Argument(DEFAULT_WORKFLOW_ID)
) -> None:
    """Check whether a gift code can still be redeemed."""
    service = GiftCodeService(get_repository())
    try:
        result = asyncio.run(service.validate(code, workflow_id))
    except TrustflowError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if not result.valid:
        typer.secho(result.error, fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Gift code {code} is valid")


@giftcode_app.command("redeem")
def giftcode_redeem(
    code: str,
    user_id: str,
    workflow_id: str = typer.Argument(DEFAULT_WORKFLOW_ID),
) -> None:
    """Redeem a gift code on behalf of a user."""
    service = GiftCodeService(get_repository())
    try:
        asyncio.run(service.redeem(code, workflow_id, user_id))
    except TrustflowError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Gift code {code} redeemed by {user_id}")


if __name__ == "__main__":
    app()
