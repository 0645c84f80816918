from brizzo.api import cli

cli()
