from shardci.cli import main

main()
