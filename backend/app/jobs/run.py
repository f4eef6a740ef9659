"""CLI entry point for job execution."""

import logging
import sys

import click
from sqlalchemy.exc import SQLAlchemyError

from app.core.logging import setup_logging
from app.db.session import SessionLocal
from app.services.exam_app.sweep import sweep_expired_tokens

logger = logging.getLogger(__name__)

JOB_KEYS = ("exam_app_token_sweep",)


@click.command()
@click.argument("job_key", type=click.Choice(JOB_KEYS))
def run(job_key: str):
    """
    Run a scheduled job.

    Example:
        python -m app.jobs.run exam_app_token_sweep
    """
    setup_logging()
    db = SessionLocal()
    try:
        if job_key == "exam_app_token_sweep":
            result = sweep_expired_tokens(db)
            click.echo(
                f"Job completed: authorizations={result.authorizations} "
                f"launch_sessions={result.launch_sessions} "
                f"gate_failures={result.gate_failures}"
            )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Job failed: {e}", exc_info=True)
        click.echo(f"Job failed: {type(e).__name__}", err=True)
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    run()
