from nvidia_media_setup.cli import main

main()
