#!/usr/bin/env python3
"""
Entry point for the gost TUN client bootstrap.
"""

from tun_bootstrap.main import main

if __name__ == "__main__":
    main()
