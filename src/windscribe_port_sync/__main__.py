from .sync import main

main()
