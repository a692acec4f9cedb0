from formtree._cli.main import main

main()
