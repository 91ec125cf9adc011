from dynaproxy.cli import cli

cli()
