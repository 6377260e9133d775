from helpscout_mcp_server import main

main()
