from embr_build_client.action import main

main()
