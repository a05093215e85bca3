"""Centralized error handler for cityscan commands."""

from collections.abc import Callable
from functools import wraps
from typing import Any

import click

from cityscan.errors import CityscanError
from cityscan.utils.logging import logger


def handle_exceptions(func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator that logs unexpected failures and converts them to ClickException."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except (click.ClickException, click.exceptions.Exit, click.Abort):
            raise
        except CityscanError as e:
            logger.error(
                "Command '{cmd}' failed: {err}",
                cmd=func.__name__,
                err=e.message,
            )
            raise click.ClickException(f"{type(e).__name__}: {e.message}") from e
        except Exception as e:
            logger.opt(exception=True).error(
                "Command '{cmd}' failed: {err}",
                cmd=func.__name__,
                err=str(e),
            )
            raise click.ClickException(f"{type(e).__name__}: {e}") from e

    return wrapper
