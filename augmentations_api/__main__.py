from augmentations_api.main import main

main()
