from synthgram.cli import main

main()
