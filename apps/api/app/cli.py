"""CLI tools for BriefDesk administration."""

import asyncio

import click

from app.db.enums import LEGACY_TASK_STATUS_MAP, Role
from app.db.models import Task, User
from app.db.session import SessionLocal, engine


@click.group()
def cli():
    """BriefDesk CLI tools."""
    pass


@cli.command()
def init_db():
    """
    Create all tables that do not exist yet.

    Example:
        briefdesk init-db
    """
    from app.db.base import Base

    Base.metadata.create_all(bind=engine)
    click.echo("✓ Database schema created")


@cli.command()
@click.argument("email")
@click.option("--password", default=None, help="Password for a new account (prompted if omitted)")
def create_master_admin(email: str, password: str | None):
    """
    Grant master admin to an account, creating it if needed.

    Example:
        briefdesk create-master-admin ops@example.com
    """
    from app.core.security import hash_password
    from app.services.auth_service import normalize_email, validate_password

    db = SessionLocal()
    try:
        email = normalize_email(email)
        user = db.query(User).filter(User.email == email).first()
        if user:
            user.is_master_admin = True
            db.commit()
            click.echo(f"✓ {email} is now a master admin")
            return

        if password is None:
            password = click.prompt("Password", hide_input=True, confirmation_prompt=True)
        try:
            validate_password(password)
        except ValueError as e:
            click.echo(f"❌ {e}")
            return

        user = User(
            email=email,
            display_name=email.split("@")[0],
            role=Role.SERVICE_PROVIDER.value,
            is_master_admin=True,
            password_hash=hash_password(password),
        )
        db.add(user)
        db.commit()
        click.echo(f"✓ Created master admin {email}")
        click.echo(f"  ID: {user.id}")

    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
@click.option("--email", required=True, help="User email to revoke sessions for")
def revoke_sessions(email: str):
    """
    Revoke all sessions for a user by bumping their token_version.

    Example:
        briefdesk revoke-sessions --email "user@example.com"
    """
    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email.strip().lower()).first()
        if not user:
            click.echo(f"❌ User not found: {email}")
            return

        old_version = user.token_version
        user.token_version += 1
        db.commit()

        click.echo(f"✓ Revoked all sessions for {email}")
        click.echo(f"  Token version: {old_version} → {user.token_version}")

    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
@click.option("--dry-run", is_flag=True, help="Report counts without writing")
def migrate_task_statuses(dry_run: bool):
    """
    Rewrite task statuses stored by earlier releases to the current set.

    Example:
        briefdesk migrate-task-statuses --dry-run
    """
    db = SessionLocal()
    try:
        total = 0
        for legacy, current in LEGACY_TASK_STATUS_MAP.items():
            query = db.query(Task).filter(Task.status == legacy)
            count = query.count()
            if not count:
                continue
            total += count
            click.echo(f"  {legacy} → {current}: {count}")
            if not dry_run:
                query.update({Task.status: current}, synchronize_session=False)
        if dry_run:
            db.rollback()
            click.echo(f"→ {total} task(s) would be updated")
        else:
            db.commit()
            click.echo(f"✓ Updated {total} task(s)")

    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
@click.option("--once", is_flag=True, help="Process one batch and exit")
def run_jobs(once: bool):
    """
    Process background jobs (brief generation, product analysis).

    Example:
        briefdesk run-jobs --once
    """
    from app import worker

    if not once:
        worker.main()
        return

    db = SessionLocal()
    try:
        processed = asyncio.run(worker.process_jobs_once(db))
        click.echo(f"✓ Processed {processed} job(s)")
    finally:
        db.close()


if __name__ == "__main__":
    cli()
