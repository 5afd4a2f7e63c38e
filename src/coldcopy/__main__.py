from coldcopy.cli import cli

cli()
