from scrobbler.main import main

main()
