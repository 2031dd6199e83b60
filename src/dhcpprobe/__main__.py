from dhcpprobe.cli import main

main()
