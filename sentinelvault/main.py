"""Console entry point for ``sentinel`` and ``python -m sentinelvault``."""
from __future__ import annotations
from sentinelvault.cli.commands import cli


def main(argv=None):  # pragma: no cover - thin wrapper
	# Fixed prog name so usage lines read "sentinel" under python -m too
	cli.main(args=argv, prog_name='sentinel')
