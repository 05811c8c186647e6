from hello_service.app import main

main()
