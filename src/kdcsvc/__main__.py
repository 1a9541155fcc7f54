from kdcsvc.entrypoint import main

main()
