from tilebuild.cli import main

main()
