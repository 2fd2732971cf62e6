from marketsim.cli import cli

cli()
