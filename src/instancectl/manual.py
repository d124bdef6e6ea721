"""Embedded manual page shown by ``instancectl help``."""
from __future__ import annotations

import textwrap

from rich.console import Console
from rich.markdown import Markdown

MANUAL = textwrap.dedent(
    """
    # instancectl

    Manage directory scaffolding for multiple instances of a web application.

    ## Synopsis

        instancectl list
        instancectl create INSTANCE [--dry-run]
        instancectl remove INSTANCE [--yes]
        instancectl help

    ## Description

    Every instance lives in its own directory below the instances root
    (``<install_root>/instances`` by default) and owns four directories:
    ``config``, ``log``, ``files`` and ``tmp``. The application selects an
    instance at runtime through an environment variable such as
    ``REDMINE_INSTANCE`` and reads ``config/database.yml`` from it.

    ## Commands

    * **list**: print the names of all instances, one per line.
    * **create** INSTANCE: create the directories of INSTANCE and reset their
      ownership. The command is idempotent and repairs existing instances, so
      it is safe to run again after changing the configuration. ``--dry-run``
      prints the planned changes without touching the filesystem.
    * **remove** INSTANCE: ask for confirmation, then delete the instance
      directory recursively. Directories relocated by FHS mode and the
      instance database are left in place and must be removed by hand.
      ``--yes`` skips the question.
    * **help**: show this manual.

    ## FHS mode

    With ``follow_fhs`` enabled the directories are created at standard
    system locations and symlinked into the instance directory:

    | directory | location                            |
    |-----------|-------------------------------------|
    | config    | /etc/APP/INSTANCE                   |
    | log       | /var/log/APP/INSTANCE               |
    | files     | /var/lib/APP/INSTANCE/files         |
    | tmp       | /var/cache/APP/INSTANCE             |

    ## Configuration

    Settings are read from ``/etc/instancectl/config.yml`` (override with
    ``--config-file`` or ``INSTANCECTL_CONFIG_FILE``) and from environment
    variables prefixed with ``INSTANCECTL_``:

    * ``ownership``: ``user:group`` applied to the directories; defaults to
      the owner of ``install_root``.
    * ``follow_fhs``: enable FHS mode (``yes``/``no``).
    * ``app_name``: the APP component of FHS paths.
    * ``instances_root``, ``install_root``, ``fhs_prefix``, ``logs_dir``.

    ## Exit status

    0 on success, 1 on usage errors, 2 when the configuration is invalid and
    3 when a filesystem operation fails.
    """
).strip()


def render_manual(console: Console, *, use_pager: bool | None = None) -> None:
    """Print the manual, through the pager when writing to a terminal."""
    document = Markdown(MANUAL)
    if use_pager is None:
        use_pager = console.is_terminal
    if use_pager:
        with console.pager(styles=True):
            console.print(document)
    else:
        console.print(document)


__all__ = ["MANUAL", "render_manual"]
