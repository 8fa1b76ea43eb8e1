from loadtester.main import main

main()
