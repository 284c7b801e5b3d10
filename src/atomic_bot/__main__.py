from atomic_bot.cli.main import main

main()
