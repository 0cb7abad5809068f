from falcon.cli import main

main()
