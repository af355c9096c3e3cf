"""
Command line parsing for the Saturn executor launcher.

Wrapper scripts pass flags the launcher does not know about, so unknown
tokens are ignored instead of rejected.
"""
import logging
from typing import Dict, List, Optional, Sequence

import click

from launcher.errors import MissingRequiredError, MissingValueError
from launcher.models import LauncherConfig

logger = logging.getLogger(__name__)

# flag -> (config field, parameter name used in error messages)
FLAGS: Dict[str, tuple] = {
    "-namespace": ("namespace", "namespace"),
    "-executorName": ("executor_name", "executorName"),
    "-saturnLibDir": ("runtime_lib_dir", "saturnLibDir"),
    "-appLibDir": ("app_lib_dir", "appLibDir"),
}


@click.command(
    add_help_option=False,
    context_settings={"ignore_unknown_options": True, "allow_extra_args": True},
)
@click.option("-namespace", "namespace", default=None)
@click.option("-executorName", "executor_name", default=None)
@click.option("-saturnLibDir", "runtime_lib_dir", default=None)
@click.option("-appLibDir", "app_lib_dir", default=None)
def launcher_command(**options):
    """Saturn executor launcher options."""
    return options


def _read_options(tokens: Sequence[str]) -> Dict[str, Optional[str]]:
    """Run the click parser over the tokens and return raw option values."""
    args = []
    expects_value = False
    for token in (t.strip() for t in tokens):
        if expects_value:
            args.append(token)
            expects_value = False
            continue
        # "--" would end option processing in click
        if token == "--":
            continue
        # Only exact flag tokens are recognised; "-namespace=x" is an unknown token
        if "=" in token and token.partition("=")[0] in FLAGS:
            logger.debug(f"Ignoring unrecognised argument: {token}")
            continue
        args.append(token)
        expects_value = token in FLAGS

    try:
        ctx = launcher_command.make_context("saturn-executor", args)
    except click.UsageError as e:
        flag = next(
            (f for f in FLAGS if f in (getattr(e, 'option_name', None) or str(e))),
            None,
        )
        param_name = FLAGS[flag][1] if flag else "unknown"
        raise MissingValueError(param_name) from e

    if ctx.args:
        logger.debug(f"Ignoring unrecognised arguments: {ctx.args}")

    return ctx.params


def parse_args(tokens: Sequence[str]) -> LauncherConfig:
    """
    Parse launcher arguments into a configuration record.

    Args:
        tokens: Command line tokens (without the program name)

    Returns:
        Frozen LauncherConfig

    Raises:
        MissingValueError: If an option has no non-blank value
        MissingRequiredError: If namespace is blank or absent
    """
    options = _read_options(tokens)

    values = {}
    for field, param_name in FLAGS.values():
        value = options.get(field)
        if value is None:
            continue
        value = value.strip()
        if not value:
            if field == "namespace":
                raise MissingRequiredError(param_name)
            raise MissingValueError(param_name)
        values[field] = value

    if not values.get("namespace"):
        raise MissingRequiredError("namespace")

    return LauncherConfig(**values)


def to_args(config: LauncherConfig) -> List[str]:
    """
    Re-emit the recognised flags for a configuration.

    Args:
        config: Parsed configuration

    Returns:
        Tokens that parse back to an equivalent configuration
    """
    tokens: List[str] = []
    for flag, (field, _) in FLAGS.items():
        value = getattr(config, field)
        if value is not None:
            tokens.extend([flag, str(value)])
    return tokens
