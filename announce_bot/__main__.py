from announce_bot.app import cli

cli()
